"""
Face Embedder Module (dlib ResNet)
==================================

This module turns an image into a 128-dimensional face descriptor using the
`face_recognition` library (dlib's ResNet face model). The identity store
never calls it directly: the transport layer extracts the descriptor first,
then hands the vector to the store.

VALIDATED:
- Same person distance: typically < 0.6
- Different person distance: typically > 0.6
- Descriptor dimension: 128 (same family as face-api.js in the browser)

USAGE:
------
    from face_identity.embedder import FaceEmbedder

    embedder = FaceEmbedder()
    embedding = embedder.get_embedding(image_bytes)
    # embedding = numpy array of shape (128,), or None if no face was found
"""

import logging
import threading
from typing import Optional, Protocol

import cv2
import numpy as np

from .config import Config

logger = logging.getLogger(__name__)


class EmbeddingExtractor(Protocol):
    """Boundary contract: image bytes -> D-dim descriptor, or None (no face)."""

    def get_embedding(self, image_bytes: bytes) -> Optional[np.ndarray]:
        ...


def decode_image(image_bytes: bytes, rgb: bool = True) -> np.ndarray:
    """
    Decode raw image bytes into an RGB (or OpenCV-native BGR) array.

    Raises:
        ValueError: bytes are not a decodable image
    """
    nparr = np.frombuffer(image_bytes, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if image is None:
        raise ValueError("Failed to decode image")

    # OpenCV decodes to BGR, dlib expects RGB
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB) if rgb else image


class FaceEmbedder:
    """
    Face embedder using dlib's ResNet model via `face_recognition`.

    One face per image: when several faces are present, the largest one is
    taken as the subject.
    """

    MODEL_NAME = Config.EMBEDDER_MODEL
    EMBEDDING_DIM = 128

    def __init__(
        self,
        detection_model: str = Config.EMBEDDER_DETECTION_MODEL,
        num_jitters: int = Config.EMBEDDER_NUM_JITTERS,
    ):
        self.detection_model = detection_model
        self.num_jitters = num_jitters
        self._fr = None

        self._load_model()

    def _load_model(self):
        """Import face_recognition (loads the dlib models)."""
        try:
            import face_recognition
        except ImportError as e:
            raise ImportError(
                "Install face_recognition: pip install 'face-identity[embedder]'"
            ) from e

        self._fr = face_recognition
        logger.info("✓ Face embedder loaded: %s (%d dimensions)", self.MODEL_NAME, self.EMBEDDING_DIM)

    def get_embedding(self, image_bytes: bytes) -> Optional[np.ndarray]:
        """
        Generate the descriptor for the main face in an image.

        Args:
            image_bytes: Raw image bytes (JPEG, PNG, etc.)

        Returns:
            128-dimensional float64 descriptor, or None if no face was found

        Raises:
            ValueError: image could not be decoded
        """
        image = decode_image(image_bytes)

        # Locations are (top, right, bottom, left)
        locations = self._fr.face_locations(image, model=self.detection_model)
        if not locations:
            return None

        largest = max(locations, key=lambda box: (box[2] - box[0]) * (box[1] - box[3]))
        encodings = self._fr.face_encodings(
            image,
            known_face_locations=[largest],
            num_jitters=self.num_jitters,
        )
        if not encodings:
            return None

        return np.asarray(encodings[0], dtype=np.float64)


# Singleton instance for reuse
_embedder_instance = None
_embedder_lock = threading.Lock()


def get_embedder() -> FaceEmbedder:
    """Get or create the shared embedder (model loaded once)."""
    global _embedder_instance
    if _embedder_instance is None:
        with _embedder_lock:
            if _embedder_instance is None:
                _embedder_instance = FaceEmbedder()
    return _embedder_instance
