"""バッチタスクの基底クラス"""

import time
from abc import ABC, abstractmethod
from typing import Optional

import sentry_sdk

from punt.core.logging import get_logger


class BatchTask(ABC):
    """
    バックアップ・セッション掃除などのメンテナンスタスク。

    サブクラスは execute() を実装し、run() 経由で実行する。
    失敗はログとSentryに送ったうえで呼び出し元へ再送出する。
    """

    def __init__(self) -> None:
        self.logger = get_logger(self.__class__.__module__)
        self.elapsed: Optional[float] = None

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def execute(self) -> None:
        """タスク本体"""

    def on_success(self) -> None:
        """成功時のフック"""

    def on_failure(self, error: Exception) -> None:
        self.logger.error(f"[BATCH] {self.name} failed: {error}", exc_info=True)

    def run(self) -> None:
        """
        Raises:
            Exception: execute()で発生した例外
        """
        started = time.monotonic()
        self.logger.info(f"[BATCH] {self.name} start")
        try:
            self.execute()
        except Exception as e:
            self.elapsed = time.monotonic() - started
            self.on_failure(e)
            sentry_sdk.capture_exception(e, tags={"batch_task": self.name})
            raise

        self.elapsed = time.monotonic() - started
        self.on_success()
        self.logger.info(f"[BATCH] {self.name} completed in {self.elapsed:.1f}s")
