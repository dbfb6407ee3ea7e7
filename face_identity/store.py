"""
Identity Store Module
=====================

The in-memory registry of (label, embedding) pairs and the identify
operation that turns a raw embedding into an identity decision.

THE TRADE-OFF:
--------------
Registration is O(1): the embedding is validated and appended, nothing is
indexed. Identification is O(N*D): every query scans every record.

The first identify after a change stacks the embeddings into one read-only
(N, D) matrix; later queries reuse it until the next register/remove. The
scan itself works through the matrix in fixed-size blocks, so per-query
memory does not grow with N.

THREAD SAFETY:
--------------
A single RLock guards the record list and the cached matrix.
- register/remove: duplicate check and mutation happen under the lock as
  one unit (first committer wins).
- identify: takes the record list and matching matrix under the lock, then
  scans outside it. Both are never mutated in place, so the scan always
  sees a consistent state.

USAGE:
------
    from face_identity.store import IdentityStore

    store = IdentityStore(dimension=128, threshold=0.6)
    store.register("Alice", alice_embedding)

    result = store.identify(query_embedding)
    if result.matched:
        print(result.label, result.confidence)
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .config import Config
from .errors import DuplicateIdentity, InvalidInput, UnknownIdentity
from .matching import (
    ConfidenceFunction,
    LinearScanSearch,
    NearestNeighborSearch,
    get_confidence_formula,
)

logger = logging.getLogger(__name__)

NO_MATCH_REASON = "no-match"


@dataclass(frozen=True, eq=False)
class IdentityRecord:
    """One registered person. The embedding array is read-only."""
    label: str
    embedding: np.ndarray = field(repr=False)


@dataclass(frozen=True)
class Registration:
    """Result of a successful register call."""
    count: int
    label: str


@dataclass(frozen=True)
class Removal:
    """Result of pop: the removed record, where it was, and the new count."""
    record: IdentityRecord
    index: int
    count: int


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of identify.

    matched=True carries label, distance and confidence.
    matched=False carries reason="no-match".
    """
    matched: bool
    label: Optional[str] = None
    distance: Optional[float] = None
    confidence: Optional[float] = None
    reason: Optional[str] = None

    @classmethod
    def no_match(cls) -> "MatchResult":
        return cls(matched=False, reason=NO_MATCH_REASON)

    def to_dict(self) -> Dict[str, Any]:
        if self.matched:
            return {
                "matched": True,
                "label": self.label,
                "distance": self.distance,
                "confidence": self.confidence,
            }
        return {"matched": False, "reason": self.reason}


class IdentityStore:
    """
    Registry of face embeddings keyed by a unique label.

    Invariants:
    - no two records share a label (case-sensitive, after trimming)
    - every stored embedding has exactly `dimension` components
    - insertion order is preserved (used for tie-break)
    """

    def __init__(
        self,
        dimension: int = Config.EMBEDDING_DIM,
        threshold: float = Config.MATCH_THRESHOLD,
        confidence_fn: Optional[ConfidenceFunction] = None,
        search: Optional[NearestNeighborSearch] = None,
    ):
        """
        Args:
            dimension: Embedding length D fixed by the embedding model
            threshold: Default maximum accepted distance (strict <)
            confidence_fn: Maps (distance, threshold) to a [0, 1] score.
                Defaults to the formula named by Config.CONFIDENCE_FORMULA.
            search: Nearest-neighbour strategy (default: exact linear scan)
        """
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")

        self._dimension = int(dimension)
        self._threshold = self._check_threshold(threshold)
        self._confidence_fn = confidence_fn or get_confidence_formula(Config.CONFIDENCE_FORMULA)
        self._search = search or LinearScanSearch()

        self._records: List[IdentityRecord] = []
        self._labels = set()
        self._matrix: Optional[np.ndarray] = None
        self._lock = threading.RLock()

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def _check_embedding(self, embedding: Any) -> np.ndarray:
        """Return a read-only float64 copy of a valid embedding."""
        if embedding is None:
            raise InvalidInput("Embedding is required")

        try:
            vector = np.array(embedding, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Embedding must be a sequence of numbers: {e}") from e

        if vector.ndim != 1:
            raise InvalidInput(f"Embedding must be one-dimensional, got shape {vector.shape}")

        if vector.shape[0] != self._dimension:
            raise InvalidInput(
                f"Embedding must have {self._dimension} values, got {vector.shape[0]}"
            )

        if not np.all(np.isfinite(vector)):
            raise InvalidInput("Embedding contains NaN or infinite values")

        vector.setflags(write=False)
        return vector

    @staticmethod
    def _check_label(label: Any) -> str:
        if not isinstance(label, str) or not label.strip():
            raise InvalidInput("Label must be a non-empty string")
        return label.strip()

    @staticmethod
    def _check_threshold(threshold: Any) -> float:
        try:
            value = float(threshold)
        except (TypeError, ValueError):
            raise InvalidInput(f"Threshold must be a number, got {threshold!r}") from None

        if not math.isfinite(value) or value <= 0:
            raise InvalidInput(f"Threshold must be a positive finite number, got {threshold!r}")
        return value

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def register(self, label: str, embedding: Sequence[float]) -> Registration:
        """
        Register a new identity.

        Args:
            label: Human-readable name; surrounding whitespace is trimmed
            embedding: D-dimensional face descriptor

        Returns:
            Registration with the new record count and the stored label

        Raises:
            InvalidInput: empty label or malformed embedding
            DuplicateIdentity: label already registered
        """
        label = self._check_label(label)
        vector = self._check_embedding(embedding)

        with self._lock:
            if label in self._labels:
                raise DuplicateIdentity(label)

            self._records.append(IdentityRecord(label=label, embedding=vector))
            self._labels.add(label)
            self._matrix = None
            count = len(self._records)

        logger.info("Registered identity %r (total: %d)", label, count)
        return Registration(count=count, label=label)

    def identify(self, embedding: Sequence[float], threshold: Optional[float] = None) -> MatchResult:
        """
        Find the registered identity closest to the query.

        Scans every record, keeps the minimum Euclidean distance (earliest
        registration wins exact ties) and accepts it only if it is strictly
        below the threshold. A store holding only poor matches reports
        no match rather than the best available one.

        Args:
            embedding: D-dimensional query descriptor
            threshold: Maximum accepted distance (default: store threshold)

        Returns:
            MatchResult (matched or no-match)

        Raises:
            InvalidInput: malformed embedding or non-positive threshold
        """
        limit = self._threshold if threshold is None else self._check_threshold(threshold)
        query = self._check_embedding(embedding)

        with self._lock:
            records = list(self._records)
            matrix = self._embedding_matrix()

        neighbor = self._search.nearest(query, matrix)
        if neighbor is None or not neighbor.distance < limit:
            logger.debug("No match among %d identities", len(records))
            return MatchResult.no_match()

        record = records[neighbor.index]
        confidence = self._confidence_fn(neighbor.distance, limit)
        logger.debug("Matched %r at distance %.4f", record.label, neighbor.distance)

        return MatchResult(
            matched=True,
            label=record.label,
            distance=neighbor.distance,
            confidence=confidence,
        )

    def count(self) -> int:
        """Number of registered identities."""
        with self._lock:
            return len(self._records)

    def remove(self, label: str) -> int:
        """
        Delete a registered identity.

        Returns:
            The new record count

        Raises:
            UnknownIdentity: label is not registered
        """
        return self.pop(label).count

    def pop(self, label: str) -> Removal:
        """
        Delete a registered identity and hand back what was removed, so the
        caller can undo it with reinstate().

        Raises:
            UnknownIdentity: label is not registered
        """
        label = self._check_label(label)

        with self._lock:
            if label not in self._labels:
                raise UnknownIdentity(label)

            index = next(i for i, record in enumerate(self._records) if record.label == label)
            record = self._records[index]
            self._records = self._records[:index] + self._records[index + 1:]
            self._labels.discard(label)
            self._matrix = None
            count = len(self._records)

        logger.info("Removed identity %r (total: %d)", label, count)
        return Removal(record=record, index=index, count=count)

    def reinstate(self, removal: Removal) -> bool:
        """
        Put a popped record back at its old position.

        Returns False, leaving the store alone, if the label was registered
        again in the meantime.
        """
        record = removal.record

        with self._lock:
            if record.label in self._labels:
                return False

            index = min(removal.index, len(self._records))
            self._records = self._records[:index] + [record] + self._records[index:]
            self._labels.add(record.label)
            self._matrix = None

        logger.info("Reinstated identity %r", record.label)
        return True

    def _embedding_matrix(self) -> np.ndarray:
        """Read-only (N, D) matrix of all embeddings. Call with the lock held."""
        if self._matrix is None:
            if self._records:
                matrix = np.vstack([record.embedding for record in self._records])
            else:
                matrix = np.empty((0, self._dimension), dtype=np.float64)
            matrix.setflags(write=False)
            self._matrix = matrix
        return self._matrix

    def labels(self) -> List[str]:
        """Registered labels in insertion order."""
        with self._lock:
            return [record.label for record in self._records]

    def snapshot(self) -> List[IdentityRecord]:
        """Records in insertion order. Embeddings are read-only views."""
        with self._lock:
            return list(self._records)

    def contains(self, label: str) -> bool:
        with self._lock:
            return isinstance(label, str) and label.strip() in self._labels

    __contains__ = contains

    def __len__(self) -> int:
        return self.count()

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def threshold(self) -> float:
        return self._threshold


def build_store() -> IdentityStore:
    """Create a store from the current configuration."""
    return IdentityStore(
        dimension=Config.EMBEDDING_DIM,
        threshold=Config.MATCH_THRESHOLD,
        confidence_fn=get_confidence_formula(Config.CONFIDENCE_FORMULA),
    )
