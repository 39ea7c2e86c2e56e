"""セッション管理ミドルウェア"""

from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from punt.core.config import get_settings
from punt.infrastructure.database import get_db
from punt.infrastructure.repositories.session_repository import SessionService
from punt.utils.session_helper import get_client_ip, get_user_agent

settings = get_settings()


async def session_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    セッション管理ミドルウェア

    Cookieのセッションを復号して request.state.session に載せる。
    データベース未設定時は request.state.session = None。

    Args:
        request: HTTPリクエスト
        call_next: 次のミドルウェア/エンドポイント

    Returns:
        HTTPレスポンス
    """
    request.state.client_ip = get_client_ip(request)
    request.state.user_agent = get_user_agent(request)
    request.state.session_id = None

    if not settings.has_database:
        request.state.session = None
        return await call_next(request)

    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if session_id:
        db_gen = get_db()
        db = next(db_gen)
        try:
            session_data = SessionService(db).get_session(
                session_id, request.state.user_agent, request.state.client_ip
            )
        finally:
            try:
                next(db_gen)
            except StopIteration:
                pass

        request.state.session = session_data or {}
        if session_data is not None:
            request.state.session_id = session_id
    else:
        request.state.session = {}

    # セッションデータの永続化は各エンドポイントで明示的に実施
    return await call_next(request)
