"""Infrastructure layer - Technical implementations"""

from .database import SessionLocal, engine, get_db

__all__ = ["get_db", "engine", "SessionLocal"]
