"""FastAPIアプリケーションファクトリー"""

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from punt.core.config import get_settings
from punt.core.lifespan import lifespan
from punt.core.logging import get_logger
from punt.presentation import api_router
from punt.presentation.exception_handlers import register_exception_handlers
from punt.presentation.middleware.error_handler import error_response_middleware
from punt.presentation.middleware.security_headers import SecurityHeadersMiddleware
from punt.presentation.middleware.session import session_middleware

logger = get_logger(__name__)


class HealthCheckFilter(logging.Filter):
    """ヘルスチェックログを除外するフィルター"""

    def filter(self, record: logging.LogRecord) -> bool:
        return "/api/system/healthcheck" not in record.getMessage()


def create_app() -> FastAPI:
    """
    FastAPIアプリケーションを生成

    Returns:
        FastAPIアプリケーションインスタンス
    """
    settings = get_settings()

    app_params: dict[str, Any] = {
        "title": "PUNT",
        "description": "プロジェクト・チケット管理API",
        "version": "0.1.0",
        "lifespan": lifespan,
    }

    # 本番環境ではドキュメントを無効化
    if settings.is_production:
        app_params["docs_url"] = None
        app_params["redoc_url"] = None
        app_params["openapi_url"] = None

    app = FastAPI(**app_params)

    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())

    # CORS
    if len(settings.BACKEND_CORS_ORIGINS) > 0:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)

    app.middleware("http")(error_response_middleware)
    app.middleware("http")(session_middleware)

    app.include_router(api_router)

    # アップロードファイル（アバター・添付）
    uploads_dir = Path(settings.UPLOAD_DIR) / "uploads"
    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=str(uploads_dir)), name="uploads")
    logger.info(f"Uploads served from: {uploads_dir}")

    return app
