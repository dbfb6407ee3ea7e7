"""
Nearest-Neighbour Matching Module
=================================

Distance metric, search strategy and confidence mapping used by the
identity store.

EDUCATIONAL NOTES:
------------------
Face descriptors from the same person land close together in embedding
space. Identification is therefore a nearest-neighbour problem: find the
registered descriptor with the smallest Euclidean distance to the query,
then accept it only if that distance is below a threshold.

For the expected catalogue size (tens to low thousands of identities) an
exhaustive scan is exact and fast enough:
- 1,000 identities x 128 dims = 128,000 multiply-adds (well under 1ms)

The search sits behind NearestNeighborSearch so a partitioned index can be
dropped in later without touching the store's contract.

CONFIDENCE:
-----------
The default mapping is linear: confidence = 1 - distance / threshold,
clamped to [0, 1]. This is a heuristic normalisation calibrated for one
embedding model. It is NOT a probability.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, NamedTuple, Optional

import numpy as np


def euclidean_distance(embedding1: np.ndarray, embedding2: np.ndarray) -> float:
    """
    Compute the Euclidean (L2) distance between two embeddings.

    Args:
        embedding1: First embedding (D-dim)
        embedding2: Second embedding (D-dim)

    Returns:
        sqrt(sum((a - b)^2)); 0 for identical vectors
    """
    diff = np.asarray(embedding1, dtype=np.float64) - np.asarray(embedding2, dtype=np.float64)
    return float(np.sqrt(np.dot(diff, diff)))


# =============================================================================
# CONFIDENCE FORMULAS
# =============================================================================

def linear_confidence(distance: float, threshold: float) -> float:
    """
    Map an accepted distance to a [0, 1] score.

    distance 0 -> 1.0, distance == threshold -> 0.0, monotonically
    decreasing in between.
    """
    return float(min(1.0, max(0.0, 1.0 - distance / threshold)))


ConfidenceFunction = Callable[[float, float], float]

CONFIDENCE_FORMULAS: Dict[str, ConfidenceFunction] = {
    "linear": linear_confidence,
}


def get_confidence_formula(name: str) -> ConfidenceFunction:
    """Look up a confidence formula by its configuration name."""
    try:
        return CONFIDENCE_FORMULAS[name]
    except KeyError:
        raise ValueError(f"Unknown confidence formula: {name}") from None


# =============================================================================
# SEARCH STRATEGIES
# =============================================================================

class Neighbor(NamedTuple):
    """Position of the nearest stored embedding and its distance."""
    index: int
    distance: float


class NearestNeighborSearch(ABC):
    """Finds the stored embedding closest to a query."""

    @abstractmethod
    def nearest(self, query: np.ndarray, matrix: np.ndarray) -> Optional[Neighbor]:
        """
        Return the nearest row of an (N, D) matrix, or None when N is 0.

        On exactly equal distances the lowest index (earliest registered)
        must win.
        """


class LinearScanSearch(NearestNeighborSearch):
    """
    Exact exhaustive search.

    Walks the (N, D) matrix in blocks of `block_size` rows, computing each
    block's distances in one vectorised pass. Scratch memory is bounded by
    the block, not by N. np.argmin returns the first occurrence of the
    minimum and a later block only wins on a strictly smaller distance,
    which gives the earliest-registered tie-break.
    """

    def __init__(self, block_size: int = 1024):
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")
        self.block_size = block_size

    def nearest(self, query: np.ndarray, matrix: np.ndarray) -> Optional[Neighbor]:
        best: Optional[Neighbor] = None

        for start in range(0, len(matrix), self.block_size):
            diffs = matrix[start:start + self.block_size] - query
            distances = np.sqrt(np.einsum("ij,ij->i", diffs, diffs))

            i = int(np.argmin(distances))
            if best is None or distances[i] < best.distance:
                best = Neighbor(index=start + i, distance=float(distances[i]))

        return best
