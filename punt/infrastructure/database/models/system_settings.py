import json
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TZDateTime, utcnow

SYSTEM_SETTINGS_ID = "system-settings"

DEFAULT_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
DEFAULT_VIDEO_TYPES = ["video/mp4", "video/webm", "video/ogg", "video/quicktime"]
DEFAULT_DOCUMENT_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
    "text/csv",
]


class SystemSettings(Base):
    """
    システム設定（シングルトン行）

    id は常に "system-settings"。
    データベースの全消去やインポートの際も削除されず、上書きされる。
    """

    __tablename__ = "system_settings"

    id: Mapped[str] = mapped_column(
        String(64), primary_key=True, default=SYSTEM_SETTINGS_ID
    )
    updated_at: Mapped[datetime] = mapped_column(
        TZDateTime, default=utcnow, onupdate=utcnow, nullable=False
    )
    updated_by: Mapped[Optional[str]] = mapped_column(String(64))

    # ブランディング
    app_name: Mapped[str] = mapped_column(String(255), default="PUNT", nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(String(512))
    logo_letter: Mapped[str] = mapped_column(String(8), default="P", nullable=False)
    logo_gradient_from: Mapped[str] = mapped_column(
        String(16), default="#f59e0b", nullable=False
    )
    logo_gradient_to: Mapped[str] = mapped_column(
        String(16), default="#ea580c", nullable=False
    )

    # アップロード制限
    max_image_size_mb: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    max_video_size_mb: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    max_document_size_mb: Mapped[int] = mapped_column(
        Integer, default=25, nullable=False
    )
    max_attachments_per_ticket: Mapped[int] = mapped_column(
        Integer, default=20, nullable=False
    )
    allowed_image_types: Mapped[str] = mapped_column(
        Text, default=json.dumps(DEFAULT_IMAGE_TYPES), nullable=False
    )
    allowed_video_types: Mapped[str] = mapped_column(
        Text, default=json.dumps(DEFAULT_VIDEO_TYPES), nullable=False
    )
    allowed_document_types: Mapped[str] = mapped_column(
        Text, default=json.dumps(DEFAULT_DOCUMENT_TYPES), nullable=False
    )

    # メール
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_provider: Mapped[str] = mapped_column(
        String(32), default="none", nullable=False
    )
    email_from_address: Mapped[str] = mapped_column(
        String(255), default="", nullable=False
    )
    email_from_name: Mapped[str] = mapped_column(
        String(255), default="PUNT", nullable=False
    )
    smtp_host: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    smtp_port: Mapped[int] = mapped_column(Integer, default=587, nullable=False)
    smtp_username: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    smtp_secure: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_password_reset: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    email_welcome: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verification: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    email_invitations: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )

    # 新規プロジェクトの既定ロール権限（JSON）
    default_role_permissions: Mapped[Optional[str]] = mapped_column(Text)
