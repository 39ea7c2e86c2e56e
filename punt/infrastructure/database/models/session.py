from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimeStampMixin, TZDateTime


class Session(Base, TimeStampMixin):
    """
    セッションモデル

    Attributes:
        session_id: セッションID（主キー）
        data: 暗号化されたセッションデータ（JSON）
        expires_at: セッション有効期限
        fingerprint: セッションフィンガープリント（User-Agent + IPのハッシュ）
        csrf_token: CSRFトークン
        user_id: ログイン中のユーザーID（未ログイン・2FA待ちはNone）
    """

    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)
    data: Mapped[str] = mapped_column(Text, nullable=False)  # 暗号化されたJSON
    expires_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False, index=True)
    fingerprint: Mapped[str] = mapped_column(
        String(64), nullable=False
    )  # SHA256ハッシュ
    csrf_token: Mapped[str] = mapped_column(String(64), nullable=False)
    # ユーザー単位の一括失効に使う
    user_id: Mapped[Optional[str]] = mapped_column(String(36), index=True)

    def __repr__(self) -> str:
        return f"<Session(session_id={self.session_id}, expires_at={self.expires_at})>"
