from fastapi import APIRouter, Depends, File, Request, Response, UploadFile
from sqlalchemy.orm import Session

from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import User
from punt.infrastructure.events import USERS_CHANNEL
from punt.infrastructure.repositories.user_repository import UserService
from punt.presentation.api.deps import (
    EventPublisher,
    get_current_user,
    get_publisher,
    rate_limit,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.users import (
    ApiKeyResponse,
    ChangePasswordRequest,
    ChangePasswordResponse,
    DeleteAccountRequest,
    RecoveryCodesResponse,
    TotpCodeRequest,
    TotpReauthRequest,
    TotpSetupResponse,
    UpdateProfileRequest,
    UserDetail,
    UserSummary,
)
from punt.utils.session_helper import delete_session

router = APIRouter()


def _publish_profile(publisher: EventPublisher, user: User) -> None:
    publisher.publish(
        USERS_CHANNEL,
        "user.updated",
        user=UserSummary.model_validate(user).model_dump(by_alias=True),
    )


@router.get("", response_model=UserDetail)
def get_me(user: User = Depends(get_current_user)) -> UserDetail:
    return UserDetail.from_user(user)


@router.patch("", response_model=UserDetail)
def update_me(
    body: UpdateProfileRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
) -> UserDetail:
    user = UserService(db).update_profile(user, name=body.name, email=body.email)
    _publish_profile(publisher, user)
    return UserDetail.from_user(user)


@router.patch(
    "/password",
    response_model=ChangePasswordResponse,
    dependencies=[Depends(rate_limit("me/password"))],
)
def change_password(
    body: ChangePasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ChangePasswordResponse:
    """
    パスワード変更

    現在のセッション以外のセッションはすべて失効する。
    """
    revoked = UserService(db).change_password(
        user,
        body.current_password,
        body.new_password,
        totp_code=body.totp_code,
        is_recovery_code=body.is_recovery_code,
        keep_session_id=getattr(request.state, "session_id", None),
    )
    return ChangePasswordResponse(sessions_revoked=revoked)


@router.post("/avatar", response_model=UserDetail)
async def upload_avatar(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
) -> UserDetail:
    content = await file.read()
    user = UserService(db).set_avatar(
        user, file.filename or "avatar", file.content_type, content
    )
    _publish_profile(publisher, user)
    return UserDetail.from_user(user)


@router.delete("/avatar", response_model=UserDetail)
def delete_avatar(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
) -> UserDetail:
    user = UserService(db).remove_avatar(user)
    _publish_profile(publisher, user)
    return UserDetail.from_user(user)


@router.post(
    "/2fa/setup",
    response_model=TotpSetupResponse,
    dependencies=[Depends(rate_limit("me/2fa"))],
)
def setup_two_factor(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TotpSetupResponse:
    """
    2FA設定を開始する

    返したシークレット（QRコード）で生成したコードを /me/2fa/verify に送ると有効になる。
    """
    setup = UserService(db).begin_totp_setup(user)
    return TotpSetupResponse(secret=setup.secret, uri=setup.uri, qr_code=setup.qr_code)


@router.post(
    "/2fa/verify",
    response_model=RecoveryCodesResponse,
    dependencies=[Depends(rate_limit("me/2fa"))],
)
def verify_two_factor(
    body: TotpCodeRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> RecoveryCodesResponse:
    codes = UserService(db).enable_totp(user, body.code)
    return RecoveryCodesResponse(recovery_codes=codes)


@router.post(
    "/2fa/disable",
    response_model=SuccessResponse,
    dependencies=[Depends(rate_limit("me/2fa"))],
)
def disable_two_factor(
    body: TotpReauthRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SuccessResponse:
    UserService(db).disable_totp(user, body.password, body.code, body.is_recovery_code)
    return SuccessResponse()


@router.post(
    "/2fa/recovery-codes/regenerate",
    response_model=RecoveryCodesResponse,
    dependencies=[Depends(rate_limit("me/2fa"))],
)
def regenerate_recovery_codes(
    body: TotpReauthRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> RecoveryCodesResponse:
    codes = UserService(db).regenerate_recovery_codes(
        user, body.password, body.code, body.is_recovery_code
    )
    return RecoveryCodesResponse(recovery_codes=codes)


@router.post("/api-key", response_model=ApiKeyResponse)
def generate_api_key(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ApiKeyResponse:
    """APIキーを発行する（再発行すると以前のキーは無効）"""
    return ApiKeyResponse(api_key=UserService(db).generate_api_key(user))


@router.delete("/api-key", response_model=SuccessResponse)
def revoke_api_key(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SuccessResponse:
    UserService(db).revoke_api_key(user)
    return SuccessResponse()


@router.delete(
    "/account",
    response_model=SuccessResponse,
    dependencies=[Depends(rate_limit("me/account/delete"))],
)
def delete_account(
    body: DeleteAccountRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> SuccessResponse:
    """
    自分のアカウントを削除する

    アカウントは無効化され、このセッションを含む全セッションが失効する。
    唯一のシステム管理者は削除できない。
    """
    UserService(db).delete_own_account(
        user, body.password, body.confirmation, body.totp_code, body.is_recovery_code
    )
    delete_session(db, request, response)
    return SuccessResponse()
