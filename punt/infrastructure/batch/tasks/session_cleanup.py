"""期限切れセッションの削除タスク"""

from punt.core.config import get_settings
from punt.infrastructure.database import connection
from punt.infrastructure.repositories.session_repository import SessionService

from ..base import BatchTask
from ..registry import task_registry


class SessionCleanupTask(BatchTask):
    """期限切れのセッションを削除する。"""

    def __init__(self) -> None:
        super().__init__()
        self.deleted = 0

    def execute(self) -> None:
        if connection.SessionLocal is None:
            raise RuntimeError("Database not configured")
        db = connection.SessionLocal()
        try:
            self.deleted = SessionService(db).cleanup_expired_sessions()
        finally:
            db.close()

    def on_success(self) -> None:
        self.logger.info(f"Expired sessions removed: {self.deleted}")


def run_session_cleanup() -> None:
    SessionCleanupTask().run()


task_registry.register(
    task_id="session_cleanup",
    func=run_session_cleanup,
    cron=get_settings().SESSION_CLEANUP_SCHEDULE,
    description="Expired session cleanup task",
)
