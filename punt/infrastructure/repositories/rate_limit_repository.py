"""
レート制限（固定ウィンドウ方式）

identifier（クライアントIP）とエンドポイント名の組ごとにカウンタを保持し、
ウィンドウ内の上限を超えたリクエストを拒否する。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain.exceptions import RateLimitError

from ..database.models import RateLimit, utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """上限回数とウィンドウ長"""

    limit: int
    window: timedelta


RATE_LIMITS: dict[str, RateLimitRule] = {
    "auth/login": RateLimitRule(10, timedelta(minutes=15)),
    "auth/register": RateLimitRule(5, timedelta(hours=1)),
    "auth/2fa": RateLimitRule(10, timedelta(minutes=15)),
    "admin/users": RateLimitRule(20, timedelta(minutes=1)),
    "admin/database": RateLimitRule(10, timedelta(hours=1)),
    "me/password": RateLimitRule(5, timedelta(minutes=15)),
    "me/2fa": RateLimitRule(10, timedelta(minutes=15)),
    "me/account/delete": RateLimitRule(5, timedelta(minutes=15)),
}

DEFAULT_RULE = RateLimitRule(100, timedelta(minutes=1))


@dataclass(frozen=True)
class RateLimitStatus:
    """判定結果"""

    allowed: bool
    remaining: int
    reset_at: datetime


class RateLimitService:
    """
    DBベースのレート制限
    """

    def __init__(self, db: DBSession):
        self.db = db

    def check(self, identifier: str, endpoint: str) -> RateLimitStatus:
        """
        リクエストを1回分カウントし、許可されるか判定する

        Args:
            identifier: クライアント識別子（IPアドレス）
            endpoint: エンドポイント名（"auth/login"など）

        Returns:
            RateLimitStatus
        """
        rule = RATE_LIMITS.get(endpoint, DEFAULT_RULE)
        now = utcnow()
        window_floor = now - rule.window

        # ウィンドウ外の古いレコードを掃除
        self.db.execute(
            delete(RateLimit).where(
                RateLimit.endpoint == endpoint, RateLimit.window_start < window_floor
            )
        )

        current = self.db.scalar(
            select(RateLimit).where(
                RateLimit.identifier == identifier, RateLimit.endpoint == endpoint
            )
        )

        if current is None:
            self.db.add(
                RateLimit(
                    identifier=identifier, endpoint=endpoint, count=1, window_start=now
                )
            )
            self.db.commit()
            return RateLimitStatus(True, rule.limit - 1, now + rule.window)

        reset_at = current.window_start + rule.window
        if current.count >= rule.limit:
            self.db.commit()
            return RateLimitStatus(False, 0, reset_at)

        current.count += 1
        remaining = rule.limit - current.count
        self.db.commit()
        return RateLimitStatus(True, remaining, reset_at)

    def enforce(self, identifier: str, endpoint: str) -> RateLimitStatus:
        """
        上限超過時に RateLimitError を送出する版の check

        Raises:
            RateLimitError: 上限を超えた場合
        """
        status = self.check(identifier, endpoint)
        if not status.allowed:
            logger.warning(f"Rate limit exceeded: {endpoint} by {identifier}")
            raise RateLimitError(reset_at=status.reset_at)
        return status

    def reset(self, identifier: str, endpoint: str) -> None:
        """カウンタをリセットする（ログイン成功時など）"""
        self.db.execute(
            delete(RateLimit).where(
                RateLimit.identifier == identifier, RateLimit.endpoint == endpoint
            )
        )
        self.db.commit()
