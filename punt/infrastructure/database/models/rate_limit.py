from datetime import datetime

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TZDateTime, new_id


class RateLimit(Base):
    """
    レート制限カウンタ（固定ウィンドウ）

    identifier（クライアントIP）と endpoint の組ごとに1行。
    """

    __tablename__ = "rate_limits"
    __table_args__ = (UniqueConstraint("identifier", "endpoint"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(64), nullable=False)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    window_start: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
