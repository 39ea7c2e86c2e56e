from .connection import SessionLocal, engine, get_db
from .models import Base, BaseModel, Session, TimeStampMixin

__all__ = ["get_db", "engine", "SessionLocal", "Base", "BaseModel", "TimeStampMixin", "Session"]
