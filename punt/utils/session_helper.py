"""
セッション管理ヘルパー

FastAPIのRequestとResponseからセッションを操作するための便利な関数
"""

from typing import Any, Optional

from fastapi import Request, Response
from sqlalchemy.orm import Session as DBSession

from ..core.config import get_settings
from ..infrastructure.repositories.session_repository import SessionService


def get_client_ip(request: Request) -> Optional[str]:
    """
    クライアントIPアドレスを取得

    TRUST_PROXY有効時のみ CF-Connecting-IP / X-Forwarded-For を参照し、
    それ以外は接続元アドレスを使う。

    Args:
        request: FastAPI Request

    Returns:
        クライアントIPアドレス
    """
    if get_settings().TRUST_PROXY:
        cf_ip = request.headers.get("CF-Connecting-IP")
        if cf_ip:
            return cf_ip.strip()
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            # X-Forwarded-Forには複数のIPが含まれる可能性があるため、最初のものを使用
            return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    """
    User-Agentヘッダーを取得

    Args:
        request: FastAPI Request

    Returns:
        User-Agentヘッダー
    """
    return request.headers.get("User-Agent")


def _set_session_cookie(response: Response, session_id: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=session_id,
        max_age=settings.SESSION_EXPIRE,
        httponly=True,
        secure=settings.is_production,  # 本番環境ではHTTPSのみ
        samesite="lax",
    )


def create_session(
    db: DBSession,
    response: Response,
    request: Request,
    data: dict[str, Any],
) -> tuple[str, str]:
    """
    新しいセッションを作成してCookieに設定

    Args:
        db: DBセッション
        response: FastAPI Response
        request: FastAPI Request
        data: セッションデータ

    Returns:
        (session_id, csrf_token) のタプル
    """
    service = SessionService(db)
    session_id, csrf_token = service.create_session(
        data, get_user_agent(request), get_client_ip(request)
    )
    _set_session_cookie(response, session_id)
    return session_id, csrf_token


def regenerate_session_id(
    db: DBSession,
    request: Request,
    response: Response,
    data: Optional[dict[str, Any]] = None,
) -> Optional[tuple[str, str]]:
    """
    セッションIDを再生成（ログイン時などに使用）

    Args:
        db: DBセッション
        request: FastAPI Request
        response: FastAPI Response
        data: 新しいセッションデータ（Noneの場合は引き継ぐ）

    Returns:
        (新しいsession_id, 新しいcsrf_token) のタプル、失敗時はNone
    """
    settings = get_settings()
    old_session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not old_session_id:
        return None

    service = SessionService(db)
    result = service.regenerate_session_id(
        old_session_id, get_user_agent(request), get_client_ip(request), data
    )
    if not result:
        return None

    _set_session_cookie(response, result[0])
    return result


def start_session(
    db: DBSession,
    request: Request,
    response: Response,
    data: dict[str, Any],
) -> tuple[str, str]:
    """
    ログイン状態を切り替える

    既存のセッションがあればIDを再生成して中身を置き換え、無ければ新規作成する。
    """
    return regenerate_session_id(db, request, response, data) or create_session(
        db, response, request, data
    )


def delete_session(
    db: DBSession,
    request: Request,
    response: Response,
) -> bool:
    """
    セッションを削除してCookieをクリア

    Args:
        db: DBセッション
        request: FastAPI Request
        response: FastAPI Response

    Returns:
        削除成功時True
    """
    settings = get_settings()
    response.delete_cookie(key=settings.SESSION_COOKIE_NAME)

    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not session_id:
        return False
    return SessionService(db).delete_session(session_id)


def get_csrf_token(db: DBSession, request: Request) -> Optional[str]:
    """
    CSRFトークンを取得

    Args:
        db: DBセッション
        request: FastAPI Request

    Returns:
        CSRFトークン、セッションが存在しない場合はNone
    """
    session_id = getattr(request.state, "session_id", None)
    if not session_id:
        return None
    return SessionService(db).get_csrf_token(session_id)
