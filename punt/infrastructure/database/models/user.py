from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TZDateTime


class User(BaseModel):
    """
    ユーザーモデル

    Attributes:
        username: ログイン名（一意）
        email: メールアドレス（任意、一意）
        name: 表示名
        avatar: アバター画像のURL（/uploads/avatars/...）
        password_hash: argon2ハッシュ
        is_system_admin: システム管理者フラグ
        is_active: 無効化されたユーザーはログイン不可
        totp_enabled: 2FA有効フラグ
        totp_secret: 暗号化されたTOTPシークレット
        totp_recovery_codes: ハッシュ化されたリカバリーコード（使用済みは空文字）
        mcp_api_key: ツール連携用APIキー
    """

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar: Mapped[Optional[str]] = mapped_column(String(512))

    password_hash: Mapped[Optional[str]] = mapped_column(Text)
    password_changed_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    email_verified: Mapped[Optional[datetime]] = mapped_column(TZDateTime)

    is_system_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    totp_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    totp_secret: Mapped[Optional[str]] = mapped_column(Text)
    totp_recovery_codes: Mapped[Optional[Any]] = mapped_column(JSON)

    mcp_api_key: Mapped[Optional[str]] = mapped_column(String(128), unique=True)

    def __repr__(self) -> str:
        return f"<User(username={self.username})>"
