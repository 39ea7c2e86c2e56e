"""
依存性注入（deps）の単体テスト
"""

from typing import Any
from unittest.mock import Mock, patch

import pytest

from punt.domain.exceptions import BadRequestError, ForbiddenError, UnauthorizedError
from punt.infrastructure.repositories.permission_repository import EffectivePermissions
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_current_user,
    get_session,
    rate_limit,
    require_admin,
    require_reauth,
)
from punt.presentation.schemas.admin import ReauthRequest


class TestSessionDependency:
    """セッション取得のテスト"""

    def test_get_session_from_request_state(self) -> None:
        mock_request: Any = Mock()
        mock_request.state.session = {"user_id": "u-1"}

        assert get_session(mock_request) == {"user_id": "u-1"}

    def test_missing_session_is_empty(self) -> None:
        """セッションが無い場合は空の辞書"""
        mock_request: Any = Mock()
        mock_request.state.session = None

        assert get_session(mock_request) == {}


class TestAuthDependencies:
    """ログイン・管理者の要求"""

    def test_current_user_required(self) -> None:
        with pytest.raises(UnauthorizedError):
            get_current_user(user=None)

    def test_current_user_passthrough(self) -> None:
        user: Any = Mock()
        assert get_current_user(user=user) is user

    def test_require_admin(self) -> None:
        """システム管理者以外は403"""
        user: Any = Mock(is_system_admin=False)

        with pytest.raises(ForbiddenError):
            require_admin(user=user)

    def test_reauth_requires_password(self) -> None:
        with pytest.raises(BadRequestError):
            require_reauth(Mock(), Mock(), ReauthRequest())


class TestRateLimitDependency:
    def test_disabled_rate_limit_skips_check(self) -> None:
        """RATE_LIMIT_ENABLED=False の場合はDBに触れないこと"""
        check = rate_limit("auth/login")
        db = Mock()

        with patch("punt.presentation.api.deps.get_settings") as mock_settings:
            mock_settings.return_value.RATE_LIMIT_ENABLED = False
            check(Mock(), db=db)

        db.assert_not_called()
        assert not db.method_calls


class TestProjectContext:
    """プロジェクト権限チェック"""

    def _context(self, permissions: set[str]) -> ProjectContext:
        return ProjectContext(
            db=Mock(),
            user=Mock(),
            project=Mock(id="p-1"),
            access=EffectivePermissions(permissions=permissions),
        )

    def test_require_any_permission(self) -> None:
        context = self._context({"tickets.create"})

        context.require("tickets.create")
        context.require("project.settings", "tickets.create")
        assert context.can("tickets.create") is True
        assert context.can("project.delete") is False

    def test_missing_permission(self) -> None:
        with pytest.raises(ForbiddenError) as exc_info:
            self._context(set()).require("sprints.manage")

        assert exc_info.value.message == "Missing permission: sprints.manage"


class TestEventPublisher:
    def test_project_event(self) -> None:
        """プロジェクトチャンネルへ projectId 付きで配信すること"""
        publisher = EventPublisher(user_id="u-1", tab_id="tab-1")

        with patch("punt.presentation.api.deps.get_broker") as mock_broker:
            publisher.project("p-1", "ticket.created", ticketId="t-1")

        channel, event = mock_broker.return_value.publish.call_args.args
        assert channel == "project:p-1"
        assert event["type"] == "ticket.created"
        assert event["projectId"] == "p-1"
        assert event["ticketId"] == "t-1"
        assert event["tabId"] == "tab-1"
