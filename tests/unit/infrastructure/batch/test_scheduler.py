"""
タスクレジストリとスケジューラーの単体テスト
"""

from unittest.mock import Mock, patch

import pytest

from punt.infrastructure.batch.registry import TaskRegistry
from punt.infrastructure.batch.scheduler import (
    create_scheduler,
    start_scheduler,
    stop_scheduler,
)


def _noop() -> None:
    pass


class TestTaskRegistry:
    def test_register_task(self) -> None:
        registry = TaskRegistry()

        registry.register("database_backup", _noop, "0 3 * * *", "Database backup task")

        task = registry.get("database_backup")
        assert task.func is _noop
        assert task.cron == "0 3 * * *"
        assert task.is_scheduled is True

    def test_manual_task(self) -> None:
        """cron未設定のタスクは手動実行のみ"""
        registry = TaskRegistry()

        registry.register("database_backup", _noop, None, "Database backup task")

        assert registry.get("database_backup").is_scheduled is False
        assert registry.scheduled() == []

    def test_invalid_cron(self) -> None:
        """cron形式が不正ならValueError"""
        with pytest.raises(ValueError):
            TaskRegistry().register("broken", _noop, "every day")

    def test_unknown_task(self) -> None:
        with pytest.raises(KeyError):
            TaskRegistry().get("missing")


class TestScheduler:
    """スケジューラーへのジョブ登録と起動・停止"""

    def test_scheduled_tasks_become_jobs(self) -> None:
        registry = TaskRegistry()
        registry.register("session_cleanup", _noop, "0 * * * *", "Expired session cleanup task")
        registry.register("database_backup", _noop, None, "Database backup task")

        with patch("punt.infrastructure.batch.scheduler.task_registry", registry):
            scheduler = create_scheduler()

        jobs = scheduler.get_jobs()
        assert [job.id for job in jobs] == ["session_cleanup"]
        assert jobs[0].name == "Expired session cleanup task"

    def test_start_and_stop(self) -> None:
        scheduler = Mock()
        scheduler.get_jobs.return_value = []

        start_scheduler(scheduler)
        stop_scheduler(scheduler)

        scheduler.start.assert_called_once()
        scheduler.shutdown.assert_called_once_with(wait=True)
