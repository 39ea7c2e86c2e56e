"""バックアップの保存先（ローカルディレクトリとS3互換ストレージ）"""

import re
from datetime import datetime
from pathlib import Path
from typing import Optional

import opendal

from punt.core.config import get_settings
from punt.core.logging import get_logger

logger = get_logger(__name__)

BACKUP_PREFIX = "punt-backup-"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
BACKUP_NAME_PATTERN = re.compile(
    rf"^{BACKUP_PREFIX}(\d{{8}}_\d{{6}})\.(json|zip)$"
)


def backup_filename(timestamp: datetime, include_files: bool) -> str:
    """punt-backup-YYYYMMDD_HHMMSS.(json|zip)"""
    extension = "zip" if include_files else "json"
    return f"{BACKUP_PREFIX}{timestamp.strftime(BACKUP_TIMESTAMP_FORMAT)}.{extension}"


def parse_backup_timestamp(name: str) -> Optional[datetime]:
    """ファイル名からバックアップ日時を取り出す（対象外の名前はNone）"""
    match = BACKUP_NAME_PATTERN.match(name)
    if not match:
        return None
    return datetime.strptime(match.group(1), BACKUP_TIMESTAMP_FORMAT)


def get_backup_dir() -> Path:
    return Path(get_settings().BACKUP_DIR)


def get_local_backups() -> list[Path]:
    """
    ローカルバックアップファイルの一覧

    Returns:
        バックアップファイルのパスリスト（新しい順）
    """
    backup_dir = get_backup_dir()
    if not backup_dir.exists():
        return []
    backups = [
        p for p in backup_dir.glob(f"{BACKUP_PREFIX}*")
        if parse_backup_timestamp(p.name) is not None
    ]
    return sorted(backups, key=lambda p: p.name, reverse=True)


def get_s3_storage() -> Optional[opendal.Operator]:
    """S3ストレージ（未設定ならNone）"""
    settings = get_settings()
    if not settings.has_s3:
        return None
    return opendal.Operator(
        "s3",
        endpoint=settings.S3_ENDPOINT,
        bucket=settings.S3_BUCKET,
        access_key_id=settings.S3_ACCESS_KEY,
        secret_access_key=settings.S3_SECRET_KEY,
        region=settings.S3_REGION or "auto",
    )


def get_s3_backups(storage: Optional[opendal.Operator] = None) -> list[str]:
    """S3上のバックアップファイル名（新しい順）"""
    storage = storage or get_s3_storage()
    if storage is None:
        return []
    try:
        names = [
            entry.path
            for entry in storage.list("")
            if parse_backup_timestamp(entry.path) is not None
        ]
    except Exception as e:
        logger.error(f"Failed to list S3 backups: {e}")
        return []
    return sorted(names, reverse=True)
