"""
Face Identity Module
====================

This package registers face embeddings under human-readable names and
answers "who is this?" for new embeddings.

COMPONENTS:
-----------
- config: Configuration settings (threshold, dimension, model paths)
- store: IdentityStore, the in-memory registry and nearest-neighbour match
- matching: Distance metric, search strategy, confidence formula
- persistence: Optional save/load of the store
- embedder: Image -> 128-d descriptor (dlib via face_recognition)
- detector, demographics, emotion, analyzer: Age/gender/emotion analysis
- api: FastAPI routes

USAGE:
------
    from face_identity import IdentityStore

    store = IdentityStore(dimension=128, threshold=0.6)
    store.register("Alice", alice_embedding)
    result = store.identify(query_embedding)
"""

from .config import Config, configure_logging, print_config
from .errors import (
    DuplicateIdentity,
    IdentityStoreError,
    InvalidInput,
    PersistenceError,
    UnknownIdentity,
)
from .matching import LinearScanSearch, NearestNeighborSearch, euclidean_distance, linear_confidence
from .persistence import StorePersistence
from .store import IdentityRecord, IdentityStore, MatchResult, Registration, Removal, build_store

__version__ = "1.0.0"
__all__ = [
    "Config",
    "configure_logging",
    "print_config",
    "IdentityStore",
    "IdentityRecord",
    "MatchResult",
    "Registration",
    "Removal",
    "build_store",
    "StorePersistence",
    "NearestNeighborSearch",
    "LinearScanSearch",
    "euclidean_distance",
    "linear_confidence",
    "IdentityStoreError",
    "InvalidInput",
    "DuplicateIdentity",
    "UnknownIdentity",
    "PersistenceError",
]
