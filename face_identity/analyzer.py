"""
Face Analyzer Module
====================

Entry point for the analysis path: detect the main face in a photo, then
estimate age/gender and expression. Independent of the identity store.

USAGE:
------
    from face_identity.analyzer import FaceAnalyzer

    analyzer = FaceAnalyzer()
    analysis = analyzer.analyze_bytes(image_bytes)
    # {"age": 31, "gender": "female", "confidence": 0.97,
    #  "emotions": {...}, "dominant_emotion": "happy", "bbox": [x, y, w, h]}
    # or None when no face is found
"""

import threading
from typing import Any, Dict, Optional

from .demographics import AgeGenderAnalyzer
from .detector import FaceDetector, get_detector
from .emotion import EmotionAnalyzer


class FaceAnalyzer:
    """
    Combines the analysis components:
    - Detection (YuNet)
    - Age & gender (InsightFace genderage)
    - Emotion (ONNX expression model)
    """

    def __init__(
        self,
        detector: Optional[FaceDetector] = None,
        age_gender: Optional[AgeGenderAnalyzer] = None,
        emotion: Optional[EmotionAnalyzer] = None,
    ):
        self.detector = detector or get_detector()
        self.age_gender = age_gender or AgeGenderAnalyzer()
        self.emotion = emotion or EmotionAnalyzer()

    def analyze_bytes(self, image_bytes: bytes) -> Optional[Dict[str, Any]]:
        """
        Analyze the largest face in an image.

        Raises:
            ValueError: image could not be decoded
        """
        image, faces = self.detector.detect_from_bytes(image_bytes)

        face = self.detector.largest_face(faces)
        if face is None:
            return None

        # Age/gender wants the whole head, emotion wants a tight crop
        demographics = self.age_gender.analyze(self.detector.crop_face(image, face, padding=0.2))
        emotions = self.emotion.analyze(self.detector.crop_face(image, face, padding=0.1))

        dominant = emotions.pop("dominant")

        return {
            "age": demographics["age"],
            "gender": demographics["gender"],
            "confidence": round(demographics["gender_probability"], 2),
            "emotions": emotions,
            "dominant_emotion": dominant,
            "bbox": face["bbox"],
        }


# Singleton instance
_analyzer_instance = None
_analyzer_lock = threading.Lock()


def get_analyzer() -> FaceAnalyzer:
    """Get or create the shared face analyzer (models loaded once)."""
    global _analyzer_instance
    if _analyzer_instance is None:
        with _analyzer_lock:
            if _analyzer_instance is None:
                _analyzer_instance = FaceAnalyzer()
    return _analyzer_instance
