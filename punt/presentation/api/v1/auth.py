import time
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from punt.core.config import get_settings
from punt.core.logging import get_logger
from punt.domain.exceptions import ForbiddenError, UnauthorizedError
from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import User
from punt.infrastructure.repositories.rate_limit_repository import RateLimitService
from punt.infrastructure.repositories.user_repository import UserService
from punt.presentation.api.deps import (
    get_current_user_optional,
    get_session,
    rate_limit,
)
from punt.presentation.schemas.auth import (
    AuthStatusResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    TwoFactorLoginRequest,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.users import UserDetail
from punt.utils.session_helper import (
    delete_session,
    get_client_ip,
    get_csrf_token,
    start_session,
)

router = APIRouter()
logger = get_logger(__name__)

# パスワード確認後、2FAコード入力を待つ時間
PENDING_2FA_TTL_SECONDS = 5 * 60


def _login(db: Session, request: Request, response: Response, user: User) -> None:
    UserService(db).record_login(user)
    start_session(db, request, response, {"user_id": user.id})


@router.get("/status", response_model=AuthStatusResponse)
def auth_status(
    request: Request,
    db: Session = Depends(get_db),
    user: Optional[User] = Depends(get_current_user_optional),
) -> AuthStatusResponse:
    """
    ログイン状態と初回セットアップの要否
    """
    return AuthStatusResponse(
        authenticated=user is not None,
        needs_setup=UserService(db).count() == 0,
        registration_enabled=get_settings().ALLOW_REGISTRATION,
        user=UserDetail.from_user(user) if user else None,
        csrf_token=get_csrf_token(db, request) if user else None,
    )


@router.post(
    "/setup",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("auth/register"))],
)
def setup(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    """
    最初のシステム管理者を作成してログインする

    ユーザーが1人でも存在する場合は403。
    """
    user = UserService(db).setup_first_admin(
        body.username, body.name or body.username, body.password, body.email
    )
    _login(db, request, response, user)
    logger.info(f"Initial setup completed by {user.username}")
    return LoginResponse(user=UserDetail.from_user(user))


@router.post(
    "/register",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("auth/register"))],
)
def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    """
    セルフ登録（ALLOW_REGISTRATION 有効時のみ）
    """
    if not get_settings().ALLOW_REGISTRATION:
        raise ForbiddenError("Registration is disabled")

    user = UserService(db).create_user(
        body.username, body.name or body.username, body.password, body.email
    )
    _login(db, request, response, user)
    return LoginResponse(user=UserDetail.from_user(user))


@router.post(
    "/login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("auth/login"))],
)
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginResponse:
    """
    ユーザー名とパスワードでログインする

    2FAが有効なユーザーはセッションに保留状態を記録し、
    requires2fa=true を返す。続けて /auth/2fa/verify を呼ぶ。
    """
    user = UserService(db).authenticate(body.username, body.password)

    if user.totp_enabled:
        start_session(
            db,
            request,
            response,
            {"pending_2fa_user_id": user.id, "pending_2fa_at": int(time.time())},
        )
        return LoginResponse(requires2fa=True)

    _login(db, request, response, user)
    RateLimitService(db).reset(get_client_ip(request) or "unknown", "auth/login")
    return LoginResponse(user=UserDetail.from_user(user))


@router.post(
    "/2fa/verify",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit("auth/2fa"))],
)
def verify_two_factor(
    body: TwoFactorLoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    session: dict[str, Any] = Depends(get_session),
) -> LoginResponse:
    """
    ログインの2段階目（TOTPコードまたはリカバリーコード）
    """
    user_id = session.get("pending_2fa_user_id")
    started_at = session.get("pending_2fa_at") or 0
    if not user_id or time.time() - started_at > PENDING_2FA_TTL_SECONDS:
        raise UnauthorizedError("No pending two-factor login. Please log in again.")

    service = UserService(db)
    user = service.get(user_id)
    if user is None or not user.is_active or not user.totp_enabled:
        raise UnauthorizedError("Invalid credentials")

    service.verify_second_factor(user, body.code, body.is_recovery_code)
    _login(db, request, response, user)
    return LoginResponse(user=UserDetail.from_user(user))


@router.post("/logout", response_model=SuccessResponse)
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> SuccessResponse:
    delete_session(db, request, response)
    return SuccessResponse()
