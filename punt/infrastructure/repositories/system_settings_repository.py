"""システム設定サービス"""

import json
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import permissions as perms

from ..database.models import SYSTEM_SETTINGS_ID, SystemSettings
from ..database.models.system_settings import (
    DEFAULT_DOCUMENT_TYPES,
    DEFAULT_IMAGE_TYPES,
    DEFAULT_VIDEO_TYPES,
)

logger = get_logger(__name__)

MB = 1024 * 1024

# JSON配列として保存するフィールド
LIST_FIELDS = ("allowed_image_types", "allowed_video_types", "allowed_document_types")


def parse_type_list(raw: Optional[str], fallback: list[str]) -> list[str]:
    """MIMEタイプのJSON配列を取り出す（不正な値はfallback）"""
    if not raw:
        return list(fallback)
    try:
        parsed = json.loads(raw)
    except ValueError:
        return list(fallback)
    if not isinstance(parsed, list):
        return list(fallback)
    return [str(t) for t in parsed]


@dataclass
class UploadPolicy:
    """添付ファイルのアップロード制限"""

    image_types: list[str]
    video_types: list[str]
    document_types: list[str]
    max_image_size: int
    max_video_size: int
    max_document_size: int
    max_attachments_per_ticket: int

    @property
    def allowed_types(self) -> list[str]:
        return self.image_types + self.video_types + self.document_types

    def max_size_for(self, mime_type: str) -> int:
        """MIMEタイプに応じた最大サイズ（バイト）"""
        if mime_type in self.image_types:
            return self.max_image_size
        if mime_type in self.video_types:
            return self.max_video_size
        return self.max_document_size


class SystemSettingsService:
    """
    システム設定サービス

    設定行が無い場合は既定値で作成する。
    """

    def __init__(self, db: DBSession):
        self.db = db

    def get(self) -> SystemSettings:
        settings = self.db.get(SystemSettings, SYSTEM_SETTINGS_ID)
        if settings is None:
            settings = SystemSettings(id=SYSTEM_SETTINGS_ID)
            self.db.add(settings)
            self.db.commit()
            self.db.refresh(settings)
        return settings

    def update(self, changes: dict[str, Any], updated_by: Optional[str]) -> SystemSettings:
        """
        設定を更新する

        Args:
            changes: 更新するフィールド（snake_case）。リスト項目はlistで渡す
            updated_by: 更新したユーザーID
        """
        settings = self.get()
        for key, value in changes.items():
            if key in LIST_FIELDS and isinstance(value, list):
                value = json.dumps(value)
            setattr(settings, key, value)
        settings.updated_by = updated_by
        self.db.commit()
        self.db.refresh(settings)
        logger.info(f"System settings updated: {', '.join(sorted(changes))}")
        return settings

    def upload_policy(self) -> UploadPolicy:
        settings = self.get()
        return UploadPolicy(
            image_types=parse_type_list(settings.allowed_image_types, DEFAULT_IMAGE_TYPES),
            video_types=parse_type_list(settings.allowed_video_types, DEFAULT_VIDEO_TYPES),
            document_types=parse_type_list(
                settings.allowed_document_types, DEFAULT_DOCUMENT_TYPES
            ),
            max_image_size=settings.max_image_size_mb * MB,
            max_video_size=settings.max_video_size_mb * MB,
            max_document_size=settings.max_document_size_mb * MB,
            max_attachments_per_ticket=settings.max_attachments_per_ticket,
        )

    def default_role_permissions(self) -> dict[str, list[str]]:
        """
        新規プロジェクトの既定ロール権限

        管理者がカスタマイズしたロールのみ上書きし、残りはプリセットを使う。
        """
        result = {
            preset["name"]: list(preset["permissions"])
            for preset in perms.DEFAULT_ROLE_PRESETS
        }
        raw = self.get().default_role_permissions
        if not raw:
            return result
        try:
            customized = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed default role permissions")
            return result
        if not isinstance(customized, dict):
            return result
        for name, values in customized.items():
            if name in result and isinstance(values, list):
                result[name] = [p for p in values if perms.is_valid_permission(p)]
        return result

    def set_default_role_permissions(
        self, role_permissions: dict[str, list[str]], updated_by: Optional[str]
    ) -> SystemSettings:
        cleaned = {
            name: [p for p in values if perms.is_valid_permission(p)]
            for name, values in role_permissions.items()
        }
        return self.update(
            {"default_role_permissions": json.dumps(cleaned)}, updated_by
        )
