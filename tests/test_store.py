"""Behaviour of IdentityStore register/identify/count and friends."""

from __future__ import annotations

import math

import numpy as np
import pytest

from face_identity import DuplicateIdentity, IdentityStore, InvalidInput, UnknownIdentity
from face_identity.store import MatchResult

from .conftest import DIM, unit


def test_register_returns_new_count(store: IdentityStore) -> None:
    first = store.register("Alice", unit(0))
    second = store.register("Bob", unit(1))

    assert first.count == 1
    assert second.count == 2
    assert store.count() == 2
    assert len(store) == 2


def test_register_trims_label(store: IdentityStore) -> None:
    registration = store.register("  Alice ", unit(0))

    assert registration.label == "Alice"
    assert store.labels() == ["Alice"]
    assert "Alice" in store


def test_duplicate_label_leaves_store_unchanged(store: IdentityStore) -> None:
    store.register("Alice", unit(0))

    with pytest.raises(DuplicateIdentity) as excinfo:
        store.register("Alice", unit(5))

    assert excinfo.value.label == "Alice"
    assert store.count() == 1
    np.testing.assert_array_equal(store.snapshot()[0].embedding, unit(0))


def test_labels_are_case_sensitive(store: IdentityStore) -> None:
    store.register("alice", unit(0))
    store.register("Alice", unit(1))

    assert store.labels() == ["alice", "Alice"]


@pytest.mark.parametrize("label", ["", "   ", None, 42])
def test_register_rejects_bad_label(store: IdentityStore, label) -> None:
    with pytest.raises(InvalidInput):
        store.register(label, unit(0))

    assert store.count() == 0


@pytest.mark.parametrize(
    "embedding",
    [
        None,
        np.zeros(DIM - 1),
        np.zeros(DIM + 1),
        np.zeros((2, DIM)),
        ["a"] * DIM,
        [float("nan")] + [0.0] * (DIM - 1),
        [float("inf")] + [0.0] * (DIM - 1),
    ],
)
def test_malformed_embedding_is_rejected(store: IdentityStore, embedding) -> None:
    store.register("Alice", unit(0))

    with pytest.raises(InvalidInput):
        store.register("Bob", embedding)
    with pytest.raises(InvalidInput):
        store.identify(embedding)

    assert store.labels() == ["Alice"]


def test_self_match_is_exact(store: IdentityStore) -> None:
    rng = np.random.default_rng(7)
    embeddings = [rng.normal(size=DIM) for _ in range(5)]
    for i, embedding in enumerate(embeddings):
        store.register(f"person-{i}", embedding)

    for i, embedding in enumerate(embeddings):
        result = store.identify(embedding)
        assert result.matched
        assert result.label == f"person-{i}"
        assert result.distance == 0.0
        assert result.confidence == 1.0


def test_distance_equal_to_threshold_is_rejected() -> None:
    store = IdentityStore(dimension=DIM, threshold=5.0)
    store.register("Alice", np.zeros(DIM))

    query = np.zeros(DIM)
    query[:2] = [3.0, 4.0]

    assert store.identify(query).matched is False
    assert store.identify(query, threshold=5.0).matched is False
    assert store.identify(query, threshold=5.0001).matched is True


def test_per_call_threshold_overrides_default(store: IdentityStore) -> None:
    store.register("Alice", np.zeros(DIM))
    query = unit(0) * 0.5

    assert store.identify(query).matched is True
    assert store.identify(query, threshold=0.5).matched is False
    assert store.threshold == 0.6


def test_earliest_registration_wins_ties(store: IdentityStore) -> None:
    store.register("First", unit(0) * 0.2)
    store.register("Second", unit(1) * 0.2)

    result = store.identify(np.zeros(DIM))

    assert result.matched
    assert result.label == "First"


def test_empty_store_reports_no_match(store: IdentityStore) -> None:
    result = store.identify(unit(3))

    assert result == MatchResult.no_match()
    assert result.reason == "no-match"
    assert result.to_dict() == {"matched": False, "reason": "no-match"}


def test_confidence_is_linear_in_distance(store: IdentityStore) -> None:
    store.register("Alice", np.zeros(DIM))

    result = store.identify(unit(0) * 0.15)

    assert result.matched
    assert math.isclose(result.distance, 0.15)
    assert math.isclose(result.confidence, 0.75)


def test_alice_and_bob() -> None:
    store = IdentityStore(dimension=128)
    store.register("Alice", unit(0))
    store.register("Bob", unit(1))

    alice = store.identify(unit(0), threshold=0.6)
    assert alice.to_dict() == {"matched": True, "label": "Alice", "distance": 0.0, "confidence": 1.0}

    stranger = store.identify(unit(2), threshold=0.6)
    assert stranger.matched is False


def test_registering_alice_twice_keeps_one_record() -> None:
    store = IdentityStore(dimension=128)
    store.register("Alice", unit(0))

    with pytest.raises(DuplicateIdentity):
        store.register("Alice", unit(9))

    assert store.count() == 1


def test_caller_cannot_mutate_stored_embedding(store: IdentityStore) -> None:
    embedding = unit(0)
    store.register("Alice", embedding)
    embedding[0] = 100.0

    stored = store.snapshot()[0].embedding
    assert stored[0] == 1.0
    with pytest.raises(ValueError):
        stored[0] = 5.0


@pytest.mark.parametrize("threshold", [0, -0.1, float("nan"), float("inf"), "wide"])
def test_bad_threshold_is_rejected(store: IdentityStore, threshold) -> None:
    with pytest.raises(InvalidInput):
        store.identify(unit(0), threshold=threshold)

    with pytest.raises(InvalidInput):
        IdentityStore(dimension=DIM, threshold=threshold)


def test_remove_frees_label(store: IdentityStore) -> None:
    store.register("Alice", unit(0))
    store.register("Bob", unit(1))

    assert store.remove("Alice") == 1
    assert store.labels() == ["Bob"]
    assert store.identify(unit(0)).matched is False

    store.register("Alice", unit(2))
    assert store.labels() == ["Bob", "Alice"]


def test_remove_unknown_label(store: IdentityStore) -> None:
    with pytest.raises(UnknownIdentity) as excinfo:
        store.remove("Nobody")

    assert str(excinfo.value) == "Identity not registered: 'Nobody'"


def test_non_positive_dimension() -> None:
    with pytest.raises(ValueError):
        IdentityStore(dimension=0)


def test_identify_sees_registrations_after_earlier_queries(store: IdentityStore) -> None:
    store.register("Alice", unit(0))
    assert store.identify(unit(1)).matched is False

    store.register("Bob", unit(1))
    assert store.identify(unit(1)).label == "Bob"

    store.remove("Bob")
    assert store.identify(unit(1)).matched is False


def test_pop_and_reinstate_restore_position(store: IdentityStore) -> None:
    for i, label in enumerate(["Alice", "Bob", "Carol"]):
        store.register(label, unit(i))

    removal = store.pop("Bob")
    assert removal.index == 1
    assert removal.count == 2
    assert store.labels() == ["Alice", "Carol"]

    assert store.reinstate(removal) is True
    assert store.labels() == ["Alice", "Bob", "Carol"]
    assert store.identify(unit(1)).label == "Bob"


def test_reinstate_yields_to_newer_registration(store: IdentityStore) -> None:
    store.register("Alice", unit(0))
    removal = store.pop("Alice")
    store.register("Alice", unit(3))

    assert store.reinstate(removal) is False
    assert store.count() == 1
    np.testing.assert_array_equal(store.snapshot()[0].embedding, unit(3))
