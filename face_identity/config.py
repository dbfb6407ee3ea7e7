"""
Face Identity Service Configuration
===================================

This module contains all configurable settings for the face identity service.
Every value can be overridden with an environment variable, so the matching
engine can be recalibrated for a different embedding model without code
changes.

USAGE:
------
    from face_identity.config import Config

    dimension = Config.EMBEDDING_DIM
    threshold = Config.MATCH_THRESHOLD

RECALIBRATING:
--------------
    The default threshold (0.6) is the separation point of the 128-d dlib /
    face-api descriptor family. If you switch the embedder, set
    FACE_EMBEDDING_DIM and FACE_MATCH_THRESHOLD to values calibrated for
    the new model and restart the service.
"""

import logging
import os
from pathlib import Path

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("FACE_DATA_DIR", str(BASE_DIR / "data")))
MODELS_DIR = Path(os.getenv("FACE_MODELS_DIR", str(BASE_DIR / "face_identity" / "models")))


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """
    Central configuration for the face identity service.

    Matching settings are read by the app factory when it builds the
    IdentityStore; model settings are read lazily when a collaborator
    loads its model.
    """

    # =========================================================================
    # MATCHING SETTINGS
    # =========================================================================
    # Embedding dimension produced by the embedder (dlib ResNet: 128)
    EMBEDDING_DIM = int(os.getenv("FACE_EMBEDDING_DIM", "128"))

    # Maximum Euclidean distance still accepted as the same person.
    # Accept condition is strict: distance < threshold.
    MATCH_THRESHOLD = float(os.getenv("FACE_MATCH_THRESHOLD", "0.6"))

    # Name of the distance -> confidence mapping (see matching.CONFIDENCE_FORMULAS)
    CONFIDENCE_FORMULA = os.getenv("FACE_CONFIDENCE_FORMULA", "linear")

    # =========================================================================
    # EMBEDDER SETTINGS
    # =========================================================================
    EMBEDDER_MODEL = "dlib_resnet_v1"

    # face_recognition detection backend: "hog" (CPU) or "cnn" (GPU)
    EMBEDDER_DETECTION_MODEL = os.getenv("FACE_EMBEDDER_DETECTION", "hog")

    # Re-sample count when encoding; higher is slower but more stable
    EMBEDDER_NUM_JITTERS = int(os.getenv("FACE_EMBEDDER_JITTERS", "1"))

    # =========================================================================
    # FACE DETECTION SETTINGS (analysis path)
    # =========================================================================
    YUNET_MODEL_PATH = MODELS_DIR / "face_detection_yunet_2023mar.onnx"

    # Minimum confidence for face detection (0-1)
    DETECTION_CONFIDENCE_THRESHOLD = float(os.getenv("FACE_DETECTION_CONFIDENCE", "0.7"))

    # Minimum face size in pixels (ignore tiny faces)
    MIN_FACE_SIZE = 40

    # =========================================================================
    # ANALYSIS SETTINGS
    # =========================================================================
    GENDER_AGE_MODEL_PATH = MODELS_DIR / "genderage.onnx"
    EMOTION_MODEL_PATH = MODELS_DIR / "facial_expression.onnx"

    ENABLE_EMOTION_ANALYSIS = _env_flag("FACE_ENABLE_EMOTION", "1")

    # Emotion categories, in model output order
    EMOTION_CATEGORIES = ["angry", "disgust", "fear", "happy", "sad", "surprise", "neutral"]

    # =========================================================================
    # PERSISTENCE SETTINGS
    # =========================================================================
    # The store lives in process memory; persistence is opt-in
    PERSIST_ENABLED = _env_flag("FACE_PERSIST", "0")

    EMBEDDINGS_FILE = DATA_DIR / "identity_embeddings.npz"
    METADATA_FILE = DATA_DIR / "identity_metadata.json"

    DATABASE_URL = os.getenv("FACE_DATABASE_URL", f"sqlite:///{DATA_DIR / 'face_identity.db'}")

    UPLOAD_DIR = DATA_DIR / "uploads"

    # =========================================================================
    # TRANSPORT SETTINGS
    # =========================================================================
    # Worker threads for model inference
    MAX_WORKERS = int(os.getenv("FACE_WORKERS", "2"))

    # Seconds a request waits for one model call (extraction or analysis)
    INFERENCE_TIMEOUT_SECONDS = float(os.getenv("FACE_INFERENCE_TIMEOUT", "10.0"))

    # Load models at startup instead of on first request
    PRELOAD_MODELS = _env_flag("FACE_PRELOAD_MODELS", "1")

    # Upload limit (5MB)
    MAX_UPLOAD_BYTES = int(os.getenv("FACE_MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.getenv("FACE_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if origin.strip()
    ]

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def configure_logging() -> None:
    """Configure the root logger once for the whole service."""
    logging.basicConfig(
        level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


# =============================================================================
# HELPER FUNCTION TO PRINT CURRENT CONFIG
# =============================================================================

def print_config():
    """Print the current configuration for debugging."""
    print("=" * 60)
    print("FACE IDENTITY SERVICE CONFIGURATION")
    print("=" * 60)
    print(f"Embedder Model: {Config.EMBEDDER_MODEL} ({Config.EMBEDDING_DIM} dimensions)")
    print(f"Match Threshold: {Config.MATCH_THRESHOLD} (distance, strict <)")
    print(f"Confidence Formula: {Config.CONFIDENCE_FORMULA}")
    print(f"Persistence: {'enabled' if Config.PERSIST_ENABLED else 'disabled'}")
    print(f"Database: {Config.DATABASE_URL}")
    print(f"Max Workers: {Config.MAX_WORKERS}")
    print(f"Emotion Analysis: {Config.ENABLE_EMOTION_ANALYSIS}")
    print("=" * 60)


if __name__ == "__main__":
    print_config()
