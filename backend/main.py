import logging
import os
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm import Session

from face_identity import Config, IdentityStore, StorePersistence, __version__, build_store, configure_logging
from face_identity.analyzer import FaceAnalyzer, get_analyzer
from face_identity.api import get_store, read_image_upload, run_inference, shutdown_executor
from face_identity.embedder import get_embedder
from face_identity.api import router as identity_router

from backend.database import AnalysisModel, get_db, init_db
from backend.models import AnalysisRecord, AnalyzeFaceResponse, DataResponse, FaceAnalysis, UploadPhotoResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# Health check endpoint
@router.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now()}


# Analysis Endpoints
@router.post("/api/analyze-face", response_model=AnalyzeFaceResponse)
async def analyze_face(
    photo: UploadFile = File(...),
    analyzer: FaceAnalyzer = Depends(get_analyzer),
    db: Session = Depends(get_db),
):
    """Estimate age, gender and emotion of the main face in a photo."""
    image_bytes = await read_image_upload(photo)
    logger.info("Received photo for analysis: %s (%d bytes)", photo.filename, len(image_bytes))

    try:
        analysis = await run_inference(analyzer.analyze_bytes, image_bytes)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Analysis error")
        raise HTTPException(status_code=500, detail="Analysis failed")

    if analysis is None:
        raise HTTPException(status_code=400, detail="No face detected in the image.")

    db.add(AnalysisModel(
        age=analysis["age"],
        gender=analysis["gender"],
        confidence=analysis["confidence"],
        dominant_emotion=analysis["dominant_emotion"],
    ))
    db.commit()

    return AnalyzeFaceResponse(
        success=True,
        analysis=FaceAnalysis(
            age=analysis["age"],
            gender=analysis["gender"],
            confidence=analysis["confidence"],
            emotions=analysis["emotions"],
            dominant_emotion=analysis["dominant_emotion"],
        ),
    )


@router.post("/api/upload-photo", response_model=UploadPhotoResponse)
async def upload_photo(photo: UploadFile = File(...)):
    """Store an uploaded photo and return its public path"""
    image_bytes = await read_image_upload(photo)

    file_extension = photo.filename.rsplit(".", 1)[-1] if photo.filename and "." in photo.filename else "jpg"
    unique_filename = f"{uuid.uuid4()}.{file_extension}"

    os.makedirs(Config.UPLOAD_DIR, exist_ok=True)
    with open(os.path.join(Config.UPLOAD_DIR, unique_filename), "wb") as buffer:
        buffer.write(image_bytes)

    return UploadPhotoResponse(
        success=True,
        message="Image uploaded successfully",
        file_path=f"/uploads/{unique_filename}",
        original_name=photo.filename,
    )


@router.get("/api/data", response_model=DataResponse)
def get_data(store: IdentityStore = Depends(get_store), db: Session = Depends(get_db)):
    """Registered face count and the most recent analysis"""
    analysis_count = db.query(AnalysisModel).count()
    last = db.query(AnalysisModel).order_by(AnalysisModel.id.desc()).first()

    return DataResponse(
        face_count=store.count(),
        analysis_count=analysis_count,
        last_analysis=AnalysisRecord(
            age=last.age,
            gender=last.gender,
            confidence=last.confidence,
            dominant_emotion=last.dominant_emotion,
            timestamp=last.created_at,
        ) if last else None,
    )


def create_app(
    store: Optional[IdentityStore] = None,
    persistence: Optional[StorePersistence] = None,
    preload_models: bool = Config.PRELOAD_MODELS,
) -> FastAPI:
    """
    Build the application around one identity store.

    Args:
        store: Store to serve (default: built from Config, loaded from disk
            when persistence is enabled)
        persistence: Saves the store after every change (default: from
            Config.PERSIST_ENABLED)
        preload_models: Load embedder and analyzer at startup
    """
    configure_logging()

    app = FastAPI(title="Face Identity API", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    if persistence is None and Config.PERSIST_ENABLED:
        persistence = StorePersistence(Config.EMBEDDINGS_FILE, Config.METADATA_FILE)

    if store is None:
        store = build_store()
        if persistence is not None:
            persistence.try_load(store)

    app.state.identity_store = store
    app.state.persistence = persistence

    app.include_router(identity_router)
    app.include_router(router)

    # Serve uploaded files
    app.mount("/uploads", StaticFiles(directory=str(Config.UPLOAD_DIR), check_dir=False), name="uploads")

    @app.on_event("startup")
    async def startup_event():
        init_db()
        logger.info("✓ Identity store ready: %d faces (threshold %.2f)", store.count(), store.threshold)

        if not preload_models:
            return

        # Preload models; requests retry loading on demand if this fails
        try:
            get_embedder()
            get_analyzer()
            logger.info("✓ Face models loaded")
        except Exception as e:
            logger.warning("⚠ Face models not loaded: %s", e)

    @app.on_event("shutdown")
    async def shutdown_event():
        if persistence is not None:
            persistence.save(store)
        shutdown_executor()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))
