"""バッチスケジューラー管理"""

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MISSED, JobExecutionEvent
from apscheduler.schedulers.background import BackgroundScheduler

from punt.core.logging import get_logger

from .registry import task_registry

logger = get_logger(__name__)

# 同じタスクは並行実行せず、停止中に溜まった実行は1回にまとめる
JOB_DEFAULTS = {"coalesce": True, "max_instances": 1, "misfire_grace_time": 3600}


def _on_job_event(event: JobExecutionEvent) -> None:
    if event.code == EVENT_JOB_MISSED:
        logger.warning(f"[SCHEDULER] {event.job_id} missed its run at {event.scheduled_run_time}")
    elif event.exception is not None:
        # 詳細はBatchTask.runがログとSentryに送っている
        logger.error(f"[SCHEDULER] {event.job_id} failed: {event.exception}")


def create_scheduler() -> BackgroundScheduler:
    """
    スケジュール付きで登録されたタスクをジョブにしたスケジューラーを作成する。

    手動実行専用のタスク（cron未設定）はジョブにしない。

    Returns:
        BackgroundScheduler: 未起動のスケジューラー
    """
    scheduler = BackgroundScheduler(timezone="UTC", job_defaults=JOB_DEFAULTS)
    scheduler.add_listener(_on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MISSED)

    for task in task_registry.scheduled():
        scheduler.add_job(
            task.func, trigger=task.trigger, id=task.task_id, name=task.description
        )
        logger.info(f"[SCHEDULER] Registered task: {task.task_id} ({task.cron})")

    return scheduler


def start_scheduler(scheduler: BackgroundScheduler) -> None:
    scheduler.start()
    jobs = scheduler.get_jobs()
    logger.info(f"[SCHEDULER] Started with {len(jobs)} job(s)")
    for job in jobs:
        logger.info(f"[SCHEDULER] {job.id} next run: {job.next_run_time}")


def stop_scheduler(scheduler: BackgroundScheduler) -> None:
    # 実行中のバックアップは最後まで待つ
    scheduler.shutdown(wait=True)
    logger.info("[SCHEDULER] Stopped")
