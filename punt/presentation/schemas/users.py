"""ユーザー・プロフィール関連のスキーマ"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from punt.infrastructure.database.models import User
from punt.infrastructure.security.totp import count_remaining_recovery_codes

from .base import BaseSchema, Email


class UserSummary(BaseSchema):
    """チケットやメンバー一覧に埋め込むユーザー情報"""

    id: str
    username: str
    name: str
    avatar: Optional[str] = None


class UserDetail(UserSummary):
    """
    ユーザー詳細（本人・管理者向け）

    APIキーそのものは返さず、発行済みかどうかのみ返す。
    """

    email: Optional[str] = None
    is_system_admin: bool
    is_active: bool
    totp_enabled: bool
    recovery_codes_remaining: int = 0
    has_api_key: bool = False
    last_login_at: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserDetail":
        detail = cls.model_validate(user)
        detail.has_api_key = bool(user.mcp_api_key)
        if user.totp_enabled:
            detail.recovery_codes_remaining = count_remaining_recovery_codes(
                user.totp_recovery_codes
            )
        return detail


class UpdateProfileRequest(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[Email] = None


class ChangePasswordRequest(BaseSchema):
    current_password: str
    new_password: str
    totp_code: Optional[str] = None
    is_recovery_code: bool = False


class DeleteAccountRequest(BaseSchema):
    """confirmation には "DELETE MY ACCOUNT" を入力させる"""

    password: str
    confirmation: str
    totp_code: Optional[str] = None
    is_recovery_code: bool = False


class ChangePasswordResponse(BaseSchema):
    success: bool = True
    sessions_revoked: int


class TotpSetupResponse(BaseSchema):
    """2FA設定開始時のレスポンス（QRコードはdata URL）"""

    secret: str
    uri: str
    qr_code: str


class TotpCodeRequest(BaseSchema):
    code: str = Field(min_length=1)


class TotpReauthRequest(BaseSchema):
    """2FAの無効化・リカバリーコード再発行時の再認証"""

    password: str
    code: str
    is_recovery_code: bool = False


class RecoveryCodesResponse(BaseSchema):
    recovery_codes: list[str]


class ApiKeyResponse(BaseSchema):
    api_key: str

