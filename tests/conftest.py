"""Shared fixtures: small stores, fake model components and an API client."""

from __future__ import annotations

import time
from typing import Dict, Iterator, Optional

import numpy as np
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from backend.database import get_db, init_db
from backend.main import create_app
from face_identity.analyzer import get_analyzer
from face_identity.api import get_extractor
from face_identity.store import IdentityStore

DIM = 128


def unit(index: int, dim: int = DIM) -> np.ndarray:
    """One-hot vector with a 1 at `index`."""
    vector = np.zeros(dim)
    vector[index] = 1.0
    return vector


class FakeExtractor:
    """Maps known image payloads to fixed descriptors."""

    def __init__(self, faces: Dict[bytes, np.ndarray], delay: float = 0.0):
        self.faces = faces
        self.delay = delay

    def get_embedding(self, image_bytes: bytes) -> Optional[np.ndarray]:
        if self.delay:
            time.sleep(self.delay)
        if image_bytes == b"not-an-image":
            raise ValueError("Failed to decode image")
        return self.faces.get(image_bytes)


class FakeAnalyzer:
    def analyze_bytes(self, image_bytes: bytes):
        if image_bytes == b"no-face":
            return None
        return {
            "age": 31,
            "gender": "female",
            "confidence": 0.97,
            "emotions": {"happy": 0.8, "neutral": 0.2},
            "dominant_emotion": "happy",
            "bbox": [10, 10, 50, 50],
        }


@pytest.fixture
def store() -> IdentityStore:
    return IdentityStore(dimension=DIM, threshold=0.6)


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor({
        b"alice-photo": unit(0),
        b"alice-again": unit(0) * 0.9,
        b"bob-photo": unit(1),
        b"stranger-photo": unit(2),
    })


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def app(store: IdentityStore, extractor: FakeExtractor, session_factory):
    application = create_app(store=store, preload_models=False)

    def override_get_db() -> Iterator:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_extractor] = lambda: extractor
    application.dependency_overrides[get_analyzer] = FakeAnalyzer
    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
