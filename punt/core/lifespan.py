"""アプリケーションライフサイクル管理"""

import contextlib
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import FastAPI

from punt.core.config import get_settings
from punt.core.logging import get_logger

logger = get_logger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    アプリケーションのライフサイクル管理

    起動時:
    - 起動時刻の記録
    - データベースマイグレーション
    - バッチタスク登録
    - スケジューラー起動

    シャットダウン時:
    - スケジューラー停止
    """
    settings = get_settings()

    # 起動時刻を記録（healthcheckのuptime計算用）
    app.state.start_time = datetime.now(timezone.utc)

    # テストではテーブルをメタデータから直接作成する
    if settings.has_database and not settings.is_test:
        from punt.infrastructure.database.migration import run_migrations

        run_migrations(logger_key="uvicorn")
    else:
        logger.info("Database migrations are disabled")

    from punt.infrastructure.batch import tasks  # タスク自動登録  # noqa: F401
    from punt.infrastructure.batch.scheduler import (
        create_scheduler,
        start_scheduler,
        stop_scheduler,
    )

    scheduler = None
    if not settings.is_test:
        scheduler = create_scheduler()
        app.state.scheduler = scheduler
        start_scheduler(scheduler)

    yield

    if scheduler is not None:
        stop_scheduler(scheduler)
