"""
レート制限の単体テスト
"""

import pytest
from sqlalchemy.orm import Session as DBSession

from punt.domain.exceptions import RateLimitError
from punt.infrastructure.repositories.rate_limit_repository import (
    DEFAULT_RULE,
    RATE_LIMITS,
    RateLimitService,
)


class TestRateLimitService:
    """固定ウィンドウ方式のレート制限"""

    def test_counts_down_remaining(self, db_session: DBSession) -> None:
        service = RateLimitService(db_session)
        limit = RATE_LIMITS["auth/login"].limit

        first = service.check("10.0.0.1", "auth/login")
        second = service.check("10.0.0.1", "auth/login")

        assert first.allowed is True
        assert first.remaining == limit - 1
        assert second.remaining == limit - 2

    def test_blocks_after_limit(self, db_session: DBSession) -> None:
        """上限を超えると RateLimitError になること"""
        service = RateLimitService(db_session)
        for _ in range(RATE_LIMITS["me/password"].limit):
            service.enforce("10.0.0.1", "me/password")

        with pytest.raises(RateLimitError) as exc_info:
            service.enforce("10.0.0.1", "me/password")
        assert exc_info.value.remaining == 0

    def test_identifiers_are_independent(self, db_session: DBSession) -> None:
        service = RateLimitService(db_session)
        for _ in range(RATE_LIMITS["me/password"].limit):
            service.check("10.0.0.1", "me/password")

        assert service.check("10.0.0.1", "me/password").allowed is False
        assert service.check("10.0.0.2", "me/password").allowed is True

    def test_reset(self, db_session: DBSession) -> None:
        """リセット後は再びリクエストできること"""
        service = RateLimitService(db_session)
        for _ in range(RATE_LIMITS["me/password"].limit):
            service.check("10.0.0.1", "me/password")

        service.reset("10.0.0.1", "me/password")

        assert service.check("10.0.0.1", "me/password").allowed is True

    def test_unknown_endpoint_uses_default_rule(self, db_session: DBSession) -> None:
        status = RateLimitService(db_session).check("10.0.0.1", "unknown/endpoint")
        assert status.remaining == DEFAULT_RULE.limit - 1
