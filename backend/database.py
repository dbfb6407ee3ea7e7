from sqlalchemy import Column, DateTime, Float, Integer, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.sql import func

from face_identity.config import Config

# Local dev: SQLite in the data directory; override with FACE_DATABASE_URL
DATABASE_URL = Config.DATABASE_URL

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Database Models
class AnalysisModel(Base):
    __tablename__ = "analysis_results"

    id = Column(Integer, primary_key=True, index=True)
    age = Column(Integer, nullable=False)
    gender = Column(String, nullable=False)  # 'male' or 'female'
    confidence = Column(Float, nullable=False)  # gender probability
    dominant_emotion = Column(String, default="neutral")
    created_at = Column(DateTime, default=func.now())


# Database dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Initialize database
def init_db(bind=None):
    """Create all database tables"""
    if bind is None and DATABASE_URL.startswith("sqlite:///"):
        Config.DATA_DIR.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=bind or engine)
