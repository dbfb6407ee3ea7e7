"""
Store Persistence Module
========================

Optional durable copy of the identity store. The store itself keeps no
state on disk; this module saves and restores it.

FILE LAYOUT:
------------
- identity_embeddings.npz: float64 matrix, shape (N, D), row i = record i
- identity_metadata.json:  {"labels": [...], "dimension": D, "total_count": N}

Rows and labels share insertion order, so a reload reproduces the same
tie-break behaviour. Loading replays every record through
IdentityStore.register, which re-checks uniqueness and dimension.

USAGE:
------
    from face_identity.persistence import StorePersistence

    persistence = StorePersistence(Config.EMBEDDINGS_FILE, Config.METADATA_FILE)
    persistence.save(store)
    persistence.load(store)
"""

import json
import logging
import os
import threading
import zipfile
from pathlib import Path
from typing import Union

import numpy as np

from .config import Config
from .errors import IdentityStoreError, PersistenceError
from .store import IdentityStore

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class StorePersistence:
    """Saves an IdentityStore to an .npz/.json pair and loads it back."""

    def __init__(
        self,
        embeddings_path: PathLike = Config.EMBEDDINGS_FILE,
        metadata_path: PathLike = Config.METADATA_FILE,
    ):
        self.embeddings_path = Path(embeddings_path)
        self.metadata_path = Path(metadata_path)
        self._lock = threading.Lock()

    def exists(self) -> bool:
        return self.embeddings_path.exists() and self.metadata_path.exists()

    def save(self, store: IdentityStore) -> int:
        """
        Write the store to disk.

        Each file is written to a temporary sibling and moved into place.
        Saves are serialised, and each takes its snapshot inside the lock,
        so the last save to finish holds the newest state.

        Returns:
            Number of records written

        Raises:
            PersistenceError: the files could not be written
        """
        with self._lock:
            try:
                return self._write(store)
            except OSError as e:
                logger.error("Failed to save identity store to %s: %s", self.embeddings_path, e)
                raise PersistenceError(f"Failed to save identity store: {e}") from e

    def _write(self, store: IdentityStore) -> int:
        records = store.snapshot()

        if records:
            embeddings = np.vstack([record.embedding for record in records])
        else:
            embeddings = np.empty((0, store.dimension), dtype=np.float64)

        metadata = {
            "labels": [record.label for record in records],
            "dimension": store.dimension,
            "total_count": len(records),
            "embedder_model": Config.EMBEDDER_MODEL,
        }

        self.embeddings_path.parent.mkdir(parents=True, exist_ok=True)
        self.metadata_path.parent.mkdir(parents=True, exist_ok=True)

        tmp_embeddings = self.embeddings_path.with_name(self.embeddings_path.name + ".tmp")
        with open(tmp_embeddings, "wb") as f:
            np.savez(f, embeddings=embeddings)

        tmp_metadata = self.metadata_path.with_name(self.metadata_path.name + ".tmp")
        with open(tmp_metadata, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2)

        os.replace(tmp_embeddings, self.embeddings_path)
        os.replace(tmp_metadata, self.metadata_path)

        logger.info("✓ Saved identity store with %d faces to %s", len(records), self.embeddings_path)
        return len(records)

    def load(self, store: IdentityStore) -> int:
        """
        Restore saved records into an empty store.

        Returns:
            Number of records loaded

        Raises:
            FileNotFoundError: either file is missing
            PersistenceError: files are unreadable, disagree with each other
                or with the store, or violate store invariants
        """
        if not self.embeddings_path.exists():
            raise FileNotFoundError(f"Embeddings file not found: {self.embeddings_path}")

        if not self.metadata_path.exists():
            raise FileNotFoundError(f"Metadata file not found: {self.metadata_path}")

        if store.count() != 0:
            raise PersistenceError("Refusing to load into a non-empty store")

        try:
            with open(self.metadata_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
            with np.load(self.embeddings_path, allow_pickle=False) as data:
                embeddings = data["embeddings"]
        except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as e:
            raise PersistenceError(f"Failed to read persisted store: {e}") from e

        labels = metadata.get("labels") if isinstance(metadata, dict) else None
        if not isinstance(labels, list):
            raise PersistenceError("Metadata has no label list")

        dimension = metadata.get("dimension")
        if dimension != store.dimension:
            raise PersistenceError(
                f"Persisted dimension {dimension} does not match store dimension {store.dimension}"
            )

        if embeddings.ndim != 2 or embeddings.shape[0] != len(labels):
            raise PersistenceError(
                f"Embeddings shape {embeddings.shape} does not match {len(labels)} labels"
            )

        # Validate everything before touching the target store
        staging = IdentityStore(dimension=store.dimension, threshold=store.threshold)
        try:
            for label, embedding in zip(labels, embeddings):
                staging.register(label, embedding)
        except IdentityStoreError as e:
            raise PersistenceError(f"Persisted store violates invariants: {e}") from e

        for record in staging.snapshot():
            store.register(record.label, record.embedding)

        logger.info("✓ Identity store loaded: %d faces", len(labels))
        return len(labels)

    def try_load(self, store: IdentityStore) -> int:
        """Load if both files exist; 0 otherwise."""
        if not self.exists():
            logger.info("No persisted identity store at %s, starting empty", self.embeddings_path)
            return 0
        return self.load(store)
