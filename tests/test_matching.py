"""Distance, confidence and linear-scan search."""

from __future__ import annotations

import math

import numpy as np
import pytest

from face_identity.matching import (
    LinearScanSearch,
    Neighbor,
    euclidean_distance,
    get_confidence_formula,
    linear_confidence,
)


def test_euclidean_distance() -> None:
    assert euclidean_distance(np.array([0.0, 0.0]), np.array([3.0, 4.0])) == 5.0
    assert euclidean_distance([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == 0.0


def test_linear_confidence_is_clamped() -> None:
    assert linear_confidence(0.0, 0.6) == 1.0
    assert linear_confidence(0.6, 0.6) == 0.0
    assert linear_confidence(0.9, 0.6) == 0.0
    assert math.isclose(linear_confidence(0.3, 0.6), 0.5)


def test_confidence_formula_lookup() -> None:
    assert get_confidence_formula("linear") is linear_confidence

    with pytest.raises(ValueError):
        get_confidence_formula("sigmoid")


def test_linear_scan_empty() -> None:
    assert LinearScanSearch().nearest(np.zeros(3), np.empty((0, 3))) is None


def test_linear_scan_matches_pairwise_distance() -> None:
    rng = np.random.default_rng(0)
    embeddings = [rng.normal(size=16) for _ in range(20)]
    query = rng.normal(size=16)

    neighbor = LinearScanSearch().nearest(query, np.vstack(embeddings))

    distances = [euclidean_distance(query, e) for e in embeddings]
    assert neighbor.index == int(np.argmin(distances))
    assert math.isclose(neighbor.distance, min(distances))


def test_linear_scan_prefers_lowest_index_on_ties() -> None:
    embeddings = np.array([[0.0, 2.0], [1.0, 0.0], [-1.0, 0.0]])

    assert LinearScanSearch().nearest(np.zeros(2), embeddings) == Neighbor(index=1, distance=1.0)


@pytest.mark.parametrize("block_size", [1, 2, 3, 1024])
def test_block_size_does_not_change_the_answer(block_size: int) -> None:
    rng = np.random.default_rng(3)
    matrix = rng.normal(size=(10, 8))
    matrix[7] = matrix[2]
    query = matrix[2] + 0.01

    neighbor = LinearScanSearch(block_size=block_size).nearest(query, matrix)

    assert neighbor.index == 2
    assert math.isclose(neighbor.distance, euclidean_distance(query, matrix[2]))


def test_tie_across_blocks_keeps_earliest() -> None:
    matrix = np.array([[5.0, 5.0], [1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])

    neighbor = LinearScanSearch(block_size=2).nearest(np.zeros(2), matrix)

    assert neighbor == Neighbor(index=1, distance=1.0)


def test_block_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LinearScanSearch(block_size=0)
