"""
Age & Gender Analyzer Module (ONNX)
===================================

Estimates apparent age and gender of a cropped face with the InsightFace
"genderage" ONNX model run by onnxruntime.

Model output (one row per face): [female_score, male_score, age / 100]

USAGE:
------
    from face_identity.demographics import AgeGenderAnalyzer

    analyzer = AgeGenderAnalyzer()
    result = analyzer.analyze(face_image)
    # result = {"age": 31, "gender": "female", "gender_probability": 0.97}
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import cv2
import numpy as np

from .config import Config
from .emotion import softmax

logger = logging.getLogger(__name__)

GENDER_LABELS = ("female", "male")


class AgeGenderAnalyzer:
    """Age/gender classifier. Expects a BGR face crop of any size."""

    INPUT_SIZE = (96, 96)

    def __init__(self, model_path: Optional[Path] = None, session=None):
        """
        Args:
            model_path: ONNX model path (default: Config.GENDER_AGE_MODEL_PATH)
            session: Pre-built inference session (skips model loading)
        """
        self.model_path = Path(model_path or Config.GENDER_AGE_MODEL_PATH)
        self.session = session

        if self.session is None:
            self._load_model()

        self.input_name = self.session.get_inputs()[0].name
        self.output_name = self.session.get_outputs()[0].name

    def _load_model(self):
        if not self.model_path.exists():
            raise FileNotFoundError(
                f"Gender/age model not found at {self.model_path}. "
                f"It ships with the InsightFace buffalo_l model pack."
            )

        import onnxruntime as ort

        self.session = ort.InferenceSession(str(self.model_path), providers=["CPUExecutionProvider"])
        logger.info("✓ Age/gender analyzer loaded: %s", self.model_path.name)

    def preprocess(self, face_image: np.ndarray) -> np.ndarray:
        """Resize to 96x96, BGR -> RGB, NCHW float32 blob."""
        return cv2.dnn.blobFromImage(
            face_image,
            1.0,
            self.INPUT_SIZE,
            (0.0, 0.0, 0.0),
            swapRB=True,
        )

    def analyze(self, face_image: np.ndarray) -> Dict[str, Union[int, str, float]]:
        """
        Estimate age and gender.

        Returns:
            {"age": int (floored years), "gender": "male" | "female",
             "gender_probability": float in [0, 1]}
        """
        outputs = self.session.run(
            [self.output_name],
            {self.input_name: self.preprocess(face_image)}
        )
        pred = np.asarray(outputs[0][0], dtype=np.float64)

        gender_probs = softmax(pred[:2])
        gender_index = int(np.argmax(gender_probs))

        return {
            "age": max(0, int(np.floor(pred[2] * 100))),
            "gender": GENDER_LABELS[gender_index],
            "gender_probability": float(gender_probs[gender_index]),
        }
