from typing import Any, Generator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from punt.core.config import get_settings
from punt.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

# データベース接続設定
engine: Optional[Engine]
SessionLocal: Optional[sessionmaker[Session]]


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    """SQLiteで外部キー制約（ON DELETE CASCADE等）を有効化する"""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_uri: str) -> Engine:
    """
    接続先に応じたEngineを生成する

    Args:
        database_uri: データベース接続URL

    Returns:
        SQLAlchemy Engine
    """
    if database_uri.startswith("sqlite"):
        sqlite_engine = create_engine(
            database_uri, connect_args={"check_same_thread": False}
        )
        event.listen(sqlite_engine, "connect", _enable_sqlite_foreign_keys)
        return sqlite_engine

    return create_engine(
        database_uri,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


if settings.has_database:
    engine = build_engine(settings.database_uri)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    logger.info("Database connection established")

    if settings.is_supabase:
        logger.info("Using Supabase as database provider")
else:
    engine = None
    SessionLocal = None
    logger.warning("Database is not configured. Database functionality disabled.")


def get_db() -> Generator[Session, None, None]:
    """
    DB接続のためのデペンデンシー
    yield構文でセッションをコンテキストマネージャとして提供
    """
    if not SessionLocal:
        raise RuntimeError(
            "Database not configured. Set DATABASE_URL or POSTGRES_* environment variables."
        )

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
