"""認証関連のスキーマ"""

from typing import Optional

from pydantic import Field

from .base import BaseSchema, Email
from .users import UserDetail


class AuthStatusResponse(BaseSchema):
    """
    ログイン状態

    Attributes:
        authenticated: ログイン済みか
        needs_setup: ユーザーが1人もいない（初回セットアップが必要）
        registration_enabled: 自己登録が許可されているか
        user: ログイン中のユーザー
        csrf_token: セッションのCSRFトークン
    """

    authenticated: bool
    needs_setup: bool
    registration_enabled: bool
    user: Optional[UserDetail] = None
    csrf_token: Optional[str] = None


class RegisterRequest(BaseSchema):
    username: str
    name: Optional[str] = Field(default=None, max_length=255)
    password: str
    email: Optional[Email] = None


class LoginRequest(BaseSchema):
    username: str
    password: str


class LoginResponse(BaseSchema):
    success: bool = True
    requires2fa: bool = False
    user: Optional[UserDetail] = None


class TwoFactorLoginRequest(BaseSchema):
    code: str = Field(min_length=1)
    is_recovery_code: bool = False
