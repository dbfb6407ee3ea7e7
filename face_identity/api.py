"""
Face Identity API Routes
========================

FastAPI routes mapping HTTP requests onto the identity store.

ENDPOINTS:
----------
POST   /api/register-face    - Register a name with a browser-computed descriptor
POST   /api/recognize-face   - Identify a browser-computed descriptor
POST   /api/register-photo   - Upload a photo, extract the descriptor, register it
POST   /api/recognize-photo  - Upload a photo, extract the descriptor, identify it
GET    /api/faces            - List registered names
DELETE /api/faces/{name}     - Remove a registered name
GET    /api/face/stats       - Store statistics

STATUS MAPPING:
---------------
- InvalidInput      -> 400
- DuplicateIdentity -> 409
- UnknownIdentity   -> 404
- No match          -> 200 with recognized=false (not an error)
- PersistenceError  -> 500, and the register/remove is rolled back
- Embedder missing  -> 503
- Extractor timeout -> 504

The store is never a module global: it lives on app.state and reaches the
routes through the get_store dependency.
"""

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import numpy as np
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from .config import Config
from .embedder import EmbeddingExtractor, get_embedder
from .errors import DuplicateIdentity, IdentityStoreError, PersistenceError, UnknownIdentity
from .persistence import StorePersistence
from .store import IdentityStore, MatchResult

logger = logging.getLogger(__name__)


# =============================================================================
# THREAD POOL EXECUTOR
# =============================================================================

# Inference runs in threads so the model is loaded once and shared
_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def get_executor() -> ThreadPoolExecutor:
    """Get or create the thread pool executor."""
    global _executor
    if _executor is None:
        with _executor_lock:
            if _executor is None:
                _executor = ThreadPoolExecutor(max_workers=Config.MAX_WORKERS)
    return _executor


def shutdown_executor():
    """Stop the executor at application shutdown."""
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=False)
            _executor = None


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_store(request: Request) -> IdentityStore:
    return request.app.state.identity_store


def get_persistence(request: Request) -> Optional[StorePersistence]:
    return getattr(request.app.state, "persistence", None)


def get_extractor() -> EmbeddingExtractor:
    """Shared embedder; 503 when the face_recognition extra is not installed."""
    try:
        return get_embedder()
    except ImportError as e:
        logger.error("Face embedder unavailable: %s", e)
        raise HTTPException(status_code=503, detail="Face embedder is not installed on this server")


# =============================================================================
# MODELS
# =============================================================================

class RegisterFaceRequest(BaseModel):
    """Descriptor computed client-side (face-api.js)."""
    name: Optional[str] = None
    descriptor: Optional[List[float]] = None


class RegisterFaceResponse(BaseModel):
    success: bool
    message: str
    name: str
    count: int


class RecognizeFaceRequest(BaseModel):
    descriptor: Optional[List[float]] = None
    threshold: Optional[float] = None


class RecognizeFaceResponse(BaseModel):
    """recognized=false is a normal answer, not a failure."""
    recognized: bool
    name: Optional[str] = None
    distance: Optional[float] = None
    confidence: Optional[float] = None
    message: Optional[str] = None


class FacesResponse(BaseModel):
    count: int
    names: List[str]


class RemoveFaceResponse(BaseModel):
    success: bool
    message: str
    count: int


class StatsResponse(BaseModel):
    total_faces: int
    embedding_dim: int
    match_threshold: float
    confidence_formula: str
    embedder_model: str


# =============================================================================
# HELPERS
# =============================================================================

def _http_error(error: IdentityStoreError) -> HTTPException:
    if isinstance(error, DuplicateIdentity):
        return HTTPException(status_code=409, detail=f"Name already registered: {error.label}")
    if isinstance(error, UnknownIdentity):
        return HTTPException(status_code=404, detail=f"Name not registered: {error.label}")
    if isinstance(error, PersistenceError):
        return HTTPException(status_code=500, detail="Failed to save face registry; change was not applied")
    return HTTPException(status_code=400, detail=str(error))


def _register(
    store: IdentityStore,
    persistence: Optional[StorePersistence],
    name: Optional[str],
    embedding,
) -> RegisterFaceResponse:
    try:
        registration = store.register(name, embedding)
    except IdentityStoreError as e:
        raise _http_error(e)

    if persistence is not None:
        try:
            persistence.save(store)
        except PersistenceError as e:
            # Undo so memory matches disk and the client can retry
            try:
                store.remove(registration.label)
            except UnknownIdentity:
                logger.warning("Registration of %r was already removed", registration.label)
            raise _http_error(e)

    return RegisterFaceResponse(
        success=True,
        message=f"Face registered for {registration.label}",
        name=registration.label,
        count=registration.count,
    )


def _recognize(store: IdentityStore, embedding, threshold: Optional[float]) -> RecognizeFaceResponse:
    try:
        result: MatchResult = store.identify(embedding, threshold)
    except IdentityStoreError as e:
        raise _http_error(e)

    if not result.matched:
        return RecognizeFaceResponse(recognized=False, message="No match found")

    return RecognizeFaceResponse(
        recognized=True,
        name=result.label,
        distance=result.distance,
        confidence=result.confidence,
    )


async def read_image_upload(photo: UploadFile) -> bytes:
    """Validate an uploaded image and return its bytes."""
    if not photo.content_type or not photo.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="File must be an image")

    image_bytes = await photo.read()

    if not image_bytes:
        raise HTTPException(status_code=400, detail="No image uploaded")

    if len(image_bytes) > Config.MAX_UPLOAD_BYTES:
        limit_mb = Config.MAX_UPLOAD_BYTES // (1024 * 1024)
        raise HTTPException(status_code=400, detail=f"Image too large (max {limit_mb}MB)")

    return image_bytes


async def run_inference(fn, *args):
    """
    Run a model call in the thread pool, bounded by the inference timeout.

    A timed-out worker thread still runs to completion; only the request
    stops waiting for it.
    """
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(get_executor(), fn, *args),
            timeout=Config.INFERENCE_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning("Face processing timed out after %.1fs", Config.INFERENCE_TIMEOUT_SECONDS)
        raise HTTPException(status_code=504, detail="Face processing timed out")


async def extract_embedding(extractor: EmbeddingExtractor, image_bytes: bytes) -> np.ndarray:
    """Descriptor for the uploaded image; 400 when undecodable or faceless."""
    try:
        embedding = await run_inference(extractor.get_embedding, image_bytes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if embedding is None:
        raise HTTPException(status_code=400, detail="No face detected in the image.")

    return embedding


# =============================================================================
# API ROUTES
# =============================================================================

router = APIRouter(prefix="/api", tags=["face-identity"])


@router.post("/register-face", response_model=RegisterFaceResponse)
def register_face(
    body: RegisterFaceRequest,
    store: IdentityStore = Depends(get_store),
    persistence: Optional[StorePersistence] = Depends(get_persistence),
):
    """Register a name with a descriptor computed in the browser."""
    return _register(store, persistence, body.name, body.descriptor)


@router.post("/recognize-face", response_model=RecognizeFaceResponse)
def recognize_face(body: RecognizeFaceRequest, store: IdentityStore = Depends(get_store)):
    """Identify a descriptor computed in the browser."""
    return _recognize(store, body.descriptor, body.threshold)


@router.post("/register-photo", response_model=RegisterFaceResponse)
async def register_photo(
    photo: UploadFile = File(...),
    name: Optional[str] = Form(None),
    store: IdentityStore = Depends(get_store),
    persistence: Optional[StorePersistence] = Depends(get_persistence),
    extractor: EmbeddingExtractor = Depends(get_extractor),
):
    """
    Register a name from an uploaded photo.

    The name is checked before extraction so obviously bad requests do not
    pay for inference; the store repeats the check atomically.
    """
    if not name or not name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    if name in store:
        raise HTTPException(status_code=409, detail=f"Name already registered: {name.strip()}")

    image_bytes = await read_image_upload(photo)
    embedding = await extract_embedding(extractor, image_bytes)

    return await run_in_threadpool(_register, store, persistence, name, embedding)


@router.post("/recognize-photo", response_model=RecognizeFaceResponse)
async def recognize_photo(
    photo: UploadFile = File(...),
    threshold: Optional[float] = Form(None),
    store: IdentityStore = Depends(get_store),
    extractor: EmbeddingExtractor = Depends(get_extractor),
):
    """Identify the face in an uploaded photo."""
    image_bytes = await read_image_upload(photo)
    embedding = await extract_embedding(extractor, image_bytes)

    return await run_in_threadpool(_recognize, store, embedding, threshold)


@router.get("/faces", response_model=FacesResponse)
def list_faces(store: IdentityStore = Depends(get_store)):
    """Registered names in registration order."""
    names = store.labels()
    return FacesResponse(count=len(names), names=names)


@router.delete("/faces/{name}", response_model=RemoveFaceResponse)
def remove_face(
    name: str,
    store: IdentityStore = Depends(get_store),
    persistence: Optional[StorePersistence] = Depends(get_persistence),
):
    """Remove a registered name."""
    try:
        removal = store.pop(name)
    except IdentityStoreError as e:
        raise _http_error(e)

    if persistence is not None:
        try:
            persistence.save(store)
        except PersistenceError as e:
            store.reinstate(removal)
            raise _http_error(e)

    return RemoveFaceResponse(success=True, message=f"Removed {removal.record.label}", count=removal.count)


@router.get("/face/stats", response_model=StatsResponse)
def get_stats(store: IdentityStore = Depends(get_store)):
    """Statistics about the identity store."""
    return StatsResponse(
        total_faces=store.count(),
        embedding_dim=store.dimension,
        match_threshold=store.threshold,
        confidence_formula=Config.CONFIDENCE_FORMULA,
        embedder_model=Config.EMBEDDER_MODEL,
    )
