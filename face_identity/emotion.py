"""
Emotion Analyzer Module (ONNX)
==============================

Scores the facial expression of a cropped face with a 7-class ONNX model
(Config.EMOTION_CATEGORIES order) run by onnxruntime. Identity matching
never uses it.

Emotion analysis is non-critical: if the model is missing or inference
fails, a neutral result is returned and a warning is logged.

USAGE:
------
    from face_identity.emotion import EmotionAnalyzer

    analyzer = EmotionAnalyzer()
    scores = analyzer.analyze(face_crop)
    scores["dominant"]  # e.g. "happy"
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import cv2
import numpy as np

from .config import Config

logger = logging.getLogger(__name__)


def softmax(logits: np.ndarray) -> np.ndarray:
    exp = np.exp(logits - np.max(logits))
    return exp / exp.sum()


class EmotionAnalyzer:
    """
    Emotion analyzer using an ONNX model (~6MB, ~20MB RAM).

    Expects a 48x48 grayscale face, NHWC, scaled to [0, 1].
    """

    EMOTION_LABELS = Config.EMOTION_CATEGORIES
    INPUT_SIZE = (48, 48)

    def __init__(self, model_path: Optional[Path] = None, session=None, enabled: Optional[bool] = None):
        """
        Args:
            model_path: ONNX model path (default: Config.EMOTION_MODEL_PATH)
            session: Pre-built inference session (skips model loading)
            enabled: Override Config.ENABLE_EMOTION_ANALYSIS
        """
        self.model_path = Path(model_path or Config.EMOTION_MODEL_PATH)
        self.enabled = Config.ENABLE_EMOTION_ANALYSIS if enabled is None else enabled
        self.session = session
        self.input_name = None
        self.output_name = None

        if self.session is not None:
            self._bind_io()
        elif self.enabled:
            self._load_model()

    def _load_model(self):
        """Load the ONNX emotion model; disable analysis if that fails."""
        try:
            import onnxruntime as ort

            self.session = ort.InferenceSession(str(self.model_path), providers=["CPUExecutionProvider"])
            self._bind_io()
            logger.info("✓ Emotion analyzer loaded: %s", self.model_path.name)
        except Exception as e:
            logger.warning("⚠ Failed to load emotion model (%s); emotion analysis disabled", e)
            self.session = None
            self.enabled = False

    def _bind_io(self):
        self.input_name = self.session.get_inputs()[0].name
        self.output_name = self.session.get_outputs()[0].name

    def preprocess(self, face_image: np.ndarray) -> np.ndarray:
        """
        Grayscale, resize to 48x48, scale to [0, 1], add batch and channel
        dimensions: (48, 48) -> (1, 48, 48, 1).
        """
        if len(face_image.shape) == 3:
            gray = cv2.cvtColor(face_image, cv2.COLOR_BGR2GRAY)
        else:
            gray = face_image

        resized = cv2.resize(gray, self.INPUT_SIZE)
        normalized = resized.astype(np.float32) / 255.0

        return normalized[np.newaxis, :, :, np.newaxis]

    def analyze(self, face_image: np.ndarray) -> Dict[str, Union[float, str]]:
        """
        Analyze emotions in a cropped face (BGR).

        Returns:
            Per-emotion scores summing to 1, plus "dominant":
            {"angry": 0.01, ..., "happy": 0.85, ..., "dominant": "happy"}
        """
        if not self.enabled or self.session is None:
            return self._empty_result()

        try:
            outputs = self.session.run(
                [self.output_name],
                {self.input_name: self.preprocess(face_image)}
            )
            probs = np.asarray(outputs[0][0], dtype=np.float64)

            # Some exports emit logits
            if probs.min() < 0 or probs.max() > 1:
                probs = softmax(probs)

            emotions: Dict[str, Union[float, str]] = {
                label: float(prob)
                for label, prob in zip(self.EMOTION_LABELS, probs)
            }
            emotions["dominant"] = self.EMOTION_LABELS[int(np.argmax(probs))]
            return emotions

        except Exception as e:
            logger.warning("⚠ Emotion analysis failed: %s", e)
            return self._empty_result()

    def _empty_result(self) -> Dict[str, Union[float, str]]:
        """Neutral result used when analysis is not available."""
        result: Dict[str, Union[float, str]] = {label: 0.0 for label in self.EMOTION_LABELS}
        result["neutral"] = 1.0
        result["dominant"] = "neutral"
        return result
