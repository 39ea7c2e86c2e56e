"""
スケジュール実行するタスク

import時に各タスクが task_registry に登録される。
"""

from . import backup, session_cleanup

__all__ = ["backup", "session_cleanup"]
