"""
セッションヘルパー関数の単体テスト
"""

from typing import Any, Optional
from unittest.mock import Mock, patch

from fastapi import Request, Response
from sqlalchemy.orm import Session

from punt.utils.session_helper import (
    create_session,
    delete_session,
    get_client_ip,
    get_csrf_token,
    get_user_agent,
    regenerate_session_id,
    start_session,
)


def _request(
    headers: Optional[dict[str, str]] = None,
    host: Optional[str] = "127.0.0.1",
    cookie: Optional[str] = None,
) -> Any:
    request = Mock(spec=Request)
    request.headers = headers or {}
    request.client = Mock(host=host) if host else None
    request.cookies = {"punt_session": cookie} if cookie else {}
    return request


class TestIPAndUserAgentExtraction:
    """IP取得・User-Agent取得のテスト"""

    def test_proxy_headers_ignored_by_default(self) -> None:
        """TRUST_PROXYが無効ならX-Forwarded-Forを信用しないこと"""
        request = _request({"X-Forwarded-For": "203.0.113.1"}, host="192.168.1.1")

        with patch("punt.utils.session_helper.get_settings") as mock_settings:
            mock_settings.return_value.TRUST_PROXY = False
            assert get_client_ip(request) == "192.168.1.1"

    def test_forwarded_for_with_trusted_proxy(self) -> None:
        request = _request({"X-Forwarded-For": "203.0.113.1, 198.51.100.1"})

        with patch("punt.utils.session_helper.get_settings") as mock_settings:
            mock_settings.return_value.TRUST_PROXY = True
            assert get_client_ip(request) == "203.0.113.1"

    def test_cloudflare_header_preferred(self) -> None:
        request = _request(
            {"CF-Connecting-IP": "198.51.100.7", "X-Forwarded-For": "203.0.113.1"}
        )

        with patch("punt.utils.session_helper.get_settings") as mock_settings:
            mock_settings.return_value.TRUST_PROXY = True
            assert get_client_ip(request) == "198.51.100.7"

    def test_no_client(self) -> None:
        assert get_client_ip(_request(host=None)) is None

    def test_get_user_agent(self) -> None:
        assert get_user_agent(_request({"User-Agent": "Mozilla/5.0"})) == "Mozilla/5.0"
        assert get_user_agent(_request()) is None


class TestSessionCookieOperations:
    """Cookieを使ったセッション操作のテスト"""

    def test_create_session_sets_cookie(self, db_session: Session) -> None:
        response = Mock(spec=Response)

        session_id, csrf_token = create_session(
            db_session, response, _request(), {"user_id": "u-1"}
        )

        assert session_id != csrf_token
        response.set_cookie.assert_called_once()
        assert response.set_cookie.call_args.kwargs["key"] == "punt_session"
        assert response.set_cookie.call_args.kwargs["httponly"] is True

    def test_regenerate_session_id(self, db_session: Session) -> None:
        """ログイン時にセッションIDが変わること"""
        response = Mock(spec=Response)
        old_id, _ = create_session(db_session, response, _request(), {})

        result = regenerate_session_id(
            db_session, _request(cookie=old_id), response, {"user_id": "u-1"}
        )

        assert result is not None
        assert result[0] != old_id
        assert response.set_cookie.call_count == 2

    def test_regenerate_without_cookie(self, db_session: Session) -> None:
        assert regenerate_session_id(db_session, _request(), Mock(spec=Response)) is None

    def test_start_session_creates_when_missing(self, db_session: Session) -> None:
        """既存セッションが無ければ新規作成になること"""
        response = Mock(spec=Response)

        session_id, _ = start_session(db_session, _request(), response, {"user_id": "u-1"})

        assert session_id
        response.set_cookie.assert_called_once()

    def test_delete_session(self, db_session: Session) -> None:
        response = Mock(spec=Response)
        session_id, _ = create_session(db_session, response, _request(), {})

        assert delete_session(db_session, _request(cookie=session_id), response) is True
        response.delete_cookie.assert_called_once_with(key="punt_session")

    def test_delete_session_without_cookie(self, db_session: Session) -> None:
        """Cookieが無くてもCookie削除は行うこと"""
        response = Mock(spec=Response)

        assert delete_session(db_session, _request(), response) is False
        response.delete_cookie.assert_called_once()

    def test_get_csrf_token(self, db_session: Session) -> None:
        session_id, expected = create_session(
            db_session, Mock(spec=Response), _request(), {}
        )
        request = _request()
        request.state = Mock(session_id=session_id)

        assert get_csrf_token(db_session, request) == expected

    def test_get_csrf_token_without_session(self, db_session: Session) -> None:
        request = _request()
        request.state = Mock(session_id=None)

        assert get_csrf_token(db_session, request) is None
