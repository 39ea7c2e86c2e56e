from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from punt.core.config import get_settings
from punt.core.logging import get_logger
from punt.infrastructure.database import get_db
from punt.infrastructure.events import get_broker
from punt.presentation.schemas.system import DatabaseStatus, HealthCheckResponse

router = APIRouter()
logger = get_logger(__name__)


def _check_database() -> DatabaseStatus:
    """SELECT 1 でDB接続を確認する"""
    if not get_settings().has_database:
        return DatabaseStatus(status="healthy", connection=False, error="Database disabled")

    db_gen = get_db()
    try:
        db = next(db_gen)
        db.execute(text("SELECT 1"))
        return DatabaseStatus(status="healthy", connection=True)
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return DatabaseStatus(status="unhealthy", connection=False, error=str(e))
    finally:
        db_gen.close()


@router.get("/", response_model=HealthCheckResponse)
def healthcheck(request: Request, response: Response) -> HealthCheckResponse:
    """
    ヘルスチェックエンドポイント

    - DB接続状況
    - アプリケーションuptime
    - 接続中のSSEストリーム数

    DB接続に失敗した場合は503 Service Unavailableを返す
    """
    start_time = getattr(request.app.state, "start_time", None)
    uptime_seconds = 0.0
    if start_time:
        uptime_seconds = (datetime.now(timezone.utc) - start_time).total_seconds()

    database = _check_database()
    overall_status = "ok" if database.status == "healthy" else "unhealthy"
    if overall_status == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthCheckResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=uptime_seconds,
        database=database,
        environment=get_settings().normalized_env_mode,
        sse_connections=get_broker().subscriber_count(),
    )
