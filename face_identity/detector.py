"""
Face Detector Module
====================

Locates faces for the analysis path with OpenCV's YuNet model. The
age/gender and emotion models only ever see the crop produced here.

Each YuNet result row has 15 values:
    [x, y, w, h, 10 landmark coordinates, score]
Landmarks are ignored; a face is reported as
    {"bbox": [x, y, w, h], "confidence": score}

USAGE:
------
    from face_identity.detector import get_detector

    detector = get_detector()
    image, faces = detector.detect_from_bytes(image_bytes)
    face = detector.largest_face(faces)
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from .config import Config
from .embedder import decode_image

logger = logging.getLogger(__name__)

# Longest side fed to YuNet; larger photos are downscaled first
MAX_DIM = 1920

NMS_THRESHOLD = 0.3
TOP_K = 5000

YUNET_DOWNLOAD_URL = "https://github.com/opencv/opencv_zoo/tree/main/models/face_detection_yunet"


class FaceDetector:
    """YuNet wrapper returning face boxes in original image coordinates."""

    def __init__(self, model_path: Optional[Path] = None, detector=None):
        """
        Args:
            model_path: YuNet ONNX file (default: Config.YUNET_MODEL_PATH)
            detector: Pre-built cv2.FaceDetectorYN (skips model loading)
        """
        self.model_path = Path(model_path or Config.YUNET_MODEL_PATH)
        self.detector = detector or self._create_detector()

    def _create_detector(self):
        if not self.model_path.exists():
            raise FileNotFoundError(
                f"Face detection model missing: {self.model_path} (get it from {YUNET_DOWNLOAD_URL})"
            )

        detector = cv2.FaceDetectorYN.create(
            str(self.model_path),
            "",
            (320, 320),  # reset per image in detect()
            Config.DETECTION_CONFIDENCE_THRESHOLD,
            NMS_THRESHOLD,
            TOP_K,
        )
        logger.info("✓ Face detector loaded: %s", self.model_path.name)
        return detector

    def detect(self, image: np.ndarray) -> List[Dict]:
        """
        Faces in a BGR image that pass the size and score filters.

        Returns:
            [{"bbox": [x, y, w, h], "confidence": float}, ...]
        """
        if image is None or image.size == 0:
            return []

        rows, cols = image.shape[:2]
        self.detector.setInputSize((cols, rows))
        _, raw = self.detector.detect(image)

        if raw is None or len(raw) == 0:
            return []

        boxes = raw[:, :4].astype(int)
        scores = raw[:, 14].astype(float)

        keep = (
            (boxes[:, 2] >= Config.MIN_FACE_SIZE)
            & (boxes[:, 3] >= Config.MIN_FACE_SIZE)
            & (scores >= Config.DETECTION_CONFIDENCE_THRESHOLD)
        )

        return [
            {"bbox": [int(v) for v in box], "confidence": float(score)}
            for box, score in zip(boxes[keep], scores[keep])
        ]

    def detect_from_bytes(self, image_bytes: bytes) -> Tuple[np.ndarray, List[Dict]]:
        """
        Decode an encoded image and detect faces in it.

        Returns:
            (full-resolution BGR image, faces)

        Raises:
            ValueError: bytes are not a decodable image
        """
        image = decode_image(image_bytes, rgb=False)

        longest = max(image.shape[:2])
        if longest <= MAX_DIM:
            return image, self.detect(image)

        scale = MAX_DIM / longest
        small = cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)

        faces = self.detect(small)
        for face in faces:
            face["bbox"] = [int(v / scale) for v in face["bbox"]]
        return image, faces

    @staticmethod
    def largest_face(faces: List[Dict]) -> Optional[Dict]:
        """The face with the biggest box area, or None."""
        return max(faces, key=lambda face: face["bbox"][2] * face["bbox"][3], default=None)

    @staticmethod
    def crop_face(image: np.ndarray, face: Dict, padding: float = 0.2) -> np.ndarray:
        """
        Cut out a face, growing the box by `padding` of its size on every
        side and clipping to the image.
        """
        x, y, w, h = face["bbox"]
        dx, dy = int(w * padding), int(h * padding)
        rows, cols = image.shape[:2]

        top, bottom = max(0, y - dy), min(rows, y + h + dy)
        left, right = max(0, x - dx), min(cols, x + w + dx)
        return image[top:bottom, left:right]


_detector: Optional[FaceDetector] = None
_detector_lock = threading.Lock()


def get_detector() -> FaceDetector:
    """Shared detector, created on first use."""
    global _detector
    if _detector is None:
        with _detector_lock:
            if _detector is None:
                _detector = FaceDetector()
    return _detector
