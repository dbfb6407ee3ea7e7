"""FastAPI application serving the face identity service."""
