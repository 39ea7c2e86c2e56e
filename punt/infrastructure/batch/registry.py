"""バッチタスクの登録レジストリ"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional

from apscheduler.triggers.cron import CronTrigger


@dataclass(frozen=True)
class ScheduledTask:
    """
    登録済みタスク

    trigger が None のタスクはスケジュールされず、punt-batch run からのみ実行できる。
    """

    task_id: str
    func: Callable[[], None]
    description: str
    cron: Optional[str] = None
    trigger: Optional[CronTrigger] = None

    @property
    def is_scheduled(self) -> bool:
        return self.trigger is not None


class TaskRegistry:
    """
    メンテナンスタスクの一覧。

    各タスクモジュールはimport時に自身を登録し、
    スケジューラーとCLIがこれを参照する。
    """

    def __init__(self) -> None:
        self.tasks: dict[str, ScheduledTask] = {}

    def register(
        self,
        task_id: str,
        func: Callable[[], None],
        cron: Optional[str] = None,
        description: str = "",
    ) -> ScheduledTask:
        """
        タスクを登録する。

        Args:
            task_id: タスクの一意な識別子
            func: 実行する関数
            cron: cron形式のスケジュール (例: "0 3 * * *" = 毎日3時)。空なら手動実行のみ
            description: タスクの説明

        Raises:
            ValueError: 無効なcron形式の場合
        """
        task = ScheduledTask(
            task_id=task_id,
            func=func,
            description=description or task_id,
            cron=cron or None,
            trigger=CronTrigger.from_crontab(cron, timezone="UTC") if cron else None,
        )
        self.tasks[task_id] = task
        return task

    def get(self, task_id: str) -> ScheduledTask:
        """
        Raises:
            KeyError: 未登録のタスクの場合
        """
        return self.tasks[task_id]

    def get_all(self) -> dict[str, ScheduledTask]:
        return self.tasks

    def scheduled(self) -> list[ScheduledTask]:
        return [task for task in self.tasks.values() if task.is_scheduled]


task_registry = TaskRegistry()
