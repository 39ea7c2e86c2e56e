"""管理画面（システム設定・データベース操作）のスキーマ"""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from punt.infrastructure.database.models import SystemSettings
from punt.infrastructure.database.models.system_settings import (
    DEFAULT_DOCUMENT_TYPES,
    DEFAULT_IMAGE_TYPES,
    DEFAULT_VIDEO_TYPES,
)
from punt.infrastructure.repositories.system_settings_repository import (
    parse_type_list,
)

from .base import BaseSchema, Email

WIPE_CONFIRM_TEXT = "WIPE ALL DATA"
IMPORT_CONFIRM_TEXT = "DELETE ALL DATA"
WIPE_PROJECTS_CONFIRM_TEXT = "DELETE ALL PROJECTS"


class SystemSettingsResponse(BaseSchema):
    app_name: str
    logo_url: Optional[str] = None
    logo_letter: str
    logo_gradient_from: str
    logo_gradient_to: str
    max_image_size_mb: int = Field(alias="maxImageSizeMB")
    max_video_size_mb: int = Field(alias="maxVideoSizeMB")
    max_document_size_mb: int = Field(alias="maxDocumentSizeMB")
    max_attachments_per_ticket: int
    allowed_image_types: list[str]
    allowed_video_types: list[str]
    allowed_document_types: list[str]
    email_enabled: bool
    email_provider: str
    email_from_address: str
    email_from_name: str
    smtp_host: str
    smtp_port: int
    smtp_username: str
    smtp_secure: bool
    email_password_reset: bool
    email_welcome: bool
    email_verification: bool
    email_invitations: bool
    default_role_permissions: dict[str, list[str]]
    updated_at: datetime
    updated_by: Optional[str] = None

    @classmethod
    def from_settings(
        cls, settings: SystemSettings, role_permissions: dict[str, list[str]]
    ) -> "SystemSettingsResponse":
        values = {
            name: getattr(settings, name)
            for name in cls.model_fields
            if name not in ("default_role_permissions",)
        }
        values["allowed_image_types"] = parse_type_list(
            settings.allowed_image_types, DEFAULT_IMAGE_TYPES
        )
        values["allowed_video_types"] = parse_type_list(
            settings.allowed_video_types, DEFAULT_VIDEO_TYPES
        )
        values["allowed_document_types"] = parse_type_list(
            settings.allowed_document_types, DEFAULT_DOCUMENT_TYPES
        )
        values["default_role_permissions"] = role_permissions
        return cls(**values)


class SystemSettingsUpdateRequest(BaseSchema):
    app_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    logo_url: Optional[str] = None
    logo_letter: Optional[str] = Field(default=None, min_length=1, max_length=8)
    logo_gradient_from: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    logo_gradient_to: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")
    max_image_size_mb: Optional[int] = Field(
        default=None, alias="maxImageSizeMB", ge=1, le=1024
    )
    max_video_size_mb: Optional[int] = Field(
        default=None, alias="maxVideoSizeMB", ge=1, le=4096
    )
    max_document_size_mb: Optional[int] = Field(
        default=None, alias="maxDocumentSizeMB", ge=1, le=1024
    )
    max_attachments_per_ticket: Optional[int] = Field(default=None, ge=1, le=100)
    allowed_image_types: Optional[list[str]] = None
    allowed_video_types: Optional[list[str]] = None
    allowed_document_types: Optional[list[str]] = None
    email_enabled: Optional[bool] = None
    email_provider: Optional[str] = None
    email_from_address: Optional[str] = None
    email_from_name: Optional[str] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(default=None, ge=1, le=65535)
    smtp_username: Optional[str] = None
    smtp_secure: Optional[bool] = None
    email_password_reset: Optional[bool] = None
    email_welcome: Optional[bool] = None
    email_verification: Optional[bool] = None
    email_invitations: Optional[bool] = None
    default_role_permissions: Optional[dict[str, list[str]]] = None


class ReauthRequest(BaseSchema):
    """
    機密操作の再認証項目

    2FA有効時は totpCode（isRecoveryCode でリカバリーコード扱い）も必要。
    """

    confirm_password: Optional[str] = None
    totp_code: Optional[str] = None
    is_recovery_code: bool = False


class AdminCreateUserRequest(BaseSchema):
    username: str
    name: Optional[str] = None
    password: str
    email: Optional[Email] = None
    is_system_admin: bool = False


class AdminUpdateUserRequest(ReauthRequest):
    """
    管理者によるユーザー更新

    isSystemAdmin または isActive を含む場合は再認証項目も必要。
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[Email] = None
    password: Optional[str] = None
    is_system_admin: Optional[bool] = None
    is_active: Optional[bool] = None

    def reauth_required(self) -> bool:
        return bool({"is_system_admin", "is_active"} & self.model_fields_set)

    def changes(self) -> dict[str, Any]:
        return self.model_dump(
            exclude_unset=True,
            exclude={"confirm_password", "totp_code", "is_recovery_code"},
        )


class DatabaseExportRequest(ReauthRequest):
    """password を指定するとバンドルを暗号化する"""

    password: Optional[str] = None
    include_attachments: bool = False
    include_avatars: bool = False


class DatabasePreviewRequest(BaseSchema):
    """content はエクスポートファイルのbase64"""

    content: str
    decryption_password: Optional[str] = None


class DatabaseImportRequest(ReauthRequest):
    content: str
    decryption_password: Optional[str] = None
    confirm_text: str


class DatabaseWipeRequest(ReauthRequest):
    """全消去後に作成する管理者の資格情報"""

    confirm_text: str
    username: str
    password: str


class DatabaseWipeResponse(BaseSchema):
    success: bool = True
    admin_username: str


class DatabaseWipeProjectsRequest(ReauthRequest):
    confirm_text: str


class DatabaseWipeProjectsResponse(BaseSchema):
    success: bool = True
    deleted: dict[str, int]
