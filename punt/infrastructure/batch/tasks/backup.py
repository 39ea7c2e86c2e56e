"""データベースバックアップタスク"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import opendal

from punt.core.config import get_settings
from punt.infrastructure.backup import ExportOptions, create_export
from punt.infrastructure.database import connection

from ..base import BatchTask
from ..registry import task_registry
from ..storage import (
    backup_filename,
    get_backup_dir,
    get_local_backups,
    get_s3_backups,
    get_s3_storage,
    parse_backup_timestamp,
)

# スケジュール実行時のエクスポート実行者
SYSTEM_EXPORTER = "system"


class BackupTask(BatchTask):
    """
    データベースバックアップタスク。

    エクスポートファイルを BACKUP_DIR に書き出し、
    S3互換ストレージが設定されていればアップロードする。
    BACKUP_PASSWORD があれば暗号化し、BACKUP_INCLUDE_FILES で添付ファイルと
    アバターをZIPに同梱する。
    """

    def __init__(self) -> None:
        super().__init__()
        self.settings = get_settings()
        self.storage: Optional[opendal.Operator] = None
        self._init_storage()

    def _init_storage(self) -> None:
        if not self.settings.has_s3:
            self.logger.info("S3 storage not configured, using local storage only")
            return
        try:
            self.storage = get_s3_storage()
            self.logger.info("S3 storage initialized")
        except Exception as e:
            self.logger.warning(f"Failed to initialize S3 storage: {e}")
            self.storage = None

    def execute(self) -> None:
        backup_path = self.create_backup_file()

        if self.storage:
            self._upload_to_s3(backup_path)

        self._cleanup_old_backups()

    def create_backup_file(self) -> Path:
        """
        エクスポートファイルを作成する。

        Returns:
            作成したファイルのパス
        """
        if connection.SessionLocal is None:
            raise RuntimeError("Database not configured")

        include_files = self.settings.BACKUP_INCLUDE_FILES
        options = ExportOptions(
            include_attachments=include_files, include_avatars=include_files
        )
        db = connection.SessionLocal()
        try:
            artifact = create_export(
                db,
                exported_by=SYSTEM_EXPORTER,
                options=options,
                password=self.settings.BACKUP_PASSWORD or None,
            )
        finally:
            db.close()

        backup_dir = get_backup_dir()
        backup_dir.mkdir(parents=True, exist_ok=True)
        backup_path = backup_dir / backup_filename(datetime.now(), include_files)
        backup_path.write_bytes(artifact.content)

        size_kb = len(artifact.content) / 1024
        self.logger.info(f"Backup created: {backup_path.name} ({size_kb:.1f} KB)")
        return backup_path

    def _upload_to_s3(self, file_path: Path) -> None:
        if not self.storage:
            return
        try:
            self.storage.write(file_path.name, file_path.read_bytes())
            self.logger.info(f"Uploaded to S3: {file_path.name}")
        except Exception as e:
            self.logger.error(f"Failed to upload to S3: {e}")
            raise

    def _cleanup_old_backups(self) -> None:
        """BACKUP_RETENTION_DAYS より古いバックアップを削除する。"""
        retention_days = self.settings.BACKUP_RETENTION_DAYS or 7
        cutoff_date = datetime.now() - timedelta(days=retention_days)

        for backup_file in get_local_backups():
            file_date = parse_backup_timestamp(backup_file.name)
            if file_date is None or file_date >= cutoff_date:
                continue
            try:
                backup_file.unlink()
                self.logger.info(f"Deleted old local backup: {backup_file.name}")
            except OSError as e:
                self.logger.warning(f"Failed to delete {backup_file.name}: {e}")

        if not self.storage:
            return
        for name in get_s3_backups(self.storage):
            file_date = parse_backup_timestamp(name)
            if file_date is None or file_date >= cutoff_date:
                continue
            try:
                self.storage.delete(name)
                self.logger.info(f"Deleted old S3 backup: {name}")
            except Exception as e:
                self.logger.warning(f"Failed to delete S3 backup {name}: {e}")


def run_backup() -> None:
    """スケジューラーおよびCLIから呼び出される。"""
    BackupTask().run()


task_registry.register(
    task_id="database_backup",
    func=run_backup,
    cron=get_settings().BACKUP_SCHEDULE,
    description="Database backup task",
)
