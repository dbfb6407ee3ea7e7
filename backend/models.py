from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel


# Analysis Models
class FaceAnalysis(BaseModel):
    age: int
    gender: str  # 'male' or 'female'
    confidence: float
    emotions: Dict[str, float] = {}
    dominant_emotion: str = "neutral"


class AnalyzeFaceResponse(BaseModel):
    success: bool
    analysis: FaceAnalysis


class AnalysisRecord(BaseModel):
    age: int
    gender: str
    confidence: float
    dominant_emotion: Optional[str] = None
    timestamp: datetime


class DataResponse(BaseModel):
    face_count: int
    analysis_count: int
    last_analysis: Optional[AnalysisRecord] = None


# Upload Models
class UploadPhotoResponse(BaseModel):
    success: bool
    message: str
    file_path: str
    original_name: Optional[str] = None
