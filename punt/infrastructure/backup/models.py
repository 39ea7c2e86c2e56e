"""
エクスポートバンドルのモデル定義

JSON上のキーはcamelCase、Python側の属性名はORMモデルと同じsnake_case。
from_attributes によりORMの行から直接レコードを生成できる。
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EXPORT_VERSION = "1.0.0"
COMPATIBLE_VERSIONS: tuple[str, ...] = ("1.0.0", EXPORT_VERSION)


class BundleModel(BaseModel):
    """バンドル内モデルの共通設定"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SystemSettingsRecord(BundleModel):
    id: str
    updated_at: datetime
    updated_by: Optional[str] = None
    app_name: str
    logo_url: Optional[str] = None
    logo_letter: str
    logo_gradient_from: str
    logo_gradient_to: str
    max_image_size_mb: int = Field(alias="maxImageSizeMB")
    max_video_size_mb: int = Field(alias="maxVideoSizeMB")
    max_document_size_mb: int = Field(alias="maxDocumentSizeMB")
    max_attachments_per_ticket: int
    allowed_image_types: str
    allowed_video_types: str
    allowed_document_types: str
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
    default_role_permissions: Optional[str] = None


class UserRecord(BundleModel):
    """
    ユーザー

    TOTPシークレット・リカバリーコード・APIキーは含めない。
    totp_enabled はインポート時の2FAリセット対象の判定にのみ使う。
    """

    id: str
    username: str
    email: Optional[str] = None
    name: str
    avatar: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None
    password_hash: Optional[str] = None
    password_changed_at: Optional[datetime] = None
    email_verified: Optional[datetime] = None
    is_system_admin: bool
    is_active: bool
    totp_enabled: bool = False


class ProjectRecord(BundleModel):
    id: str
    name: str
    key: str
    description: Optional[str] = None
    color: str
    created_at: datetime
    updated_at: datetime


class RoleRecord(BundleModel):
    id: str
    name: str
    color: str
    description: Optional[str] = None
    permissions: str
    is_default: bool
    position: int
    project_id: str
    created_at: datetime
    updated_at: datetime


class ColumnRecord(BundleModel):
    id: str
    name: str
    order: int
    project_id: str


class LabelRecord(BundleModel):
    id: str
    name: str
    color: str
    project_id: str


class SprintRecord(BundleModel):
    id: str
    name: str
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[int] = None
    status: str
    completed_at: Optional[datetime] = None
    completed_by_id: Optional[str] = None
    completed_ticket_count: Optional[int] = None
    incomplete_ticket_count: Optional[int] = None
    completed_story_points: Optional[int] = None
    incomplete_story_points: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    project_id: str


class ProjectMemberRecord(BundleModel):
    id: str
    role_id: str
    overrides: Optional[str] = None
    user_id: str
    project_id: str
    created_at: datetime
    updated_at: datetime


class ProjectSprintSettingsRecord(BundleModel):
    id: str
    project_id: str
    default_sprint_duration: int
    auto_carry_over_incomplete: bool
    done_column_ids: str
    created_at: datetime
    updated_at: datetime


class TicketRecord(BundleModel):
    id: str
    number: int
    title: str
    description: Optional[str] = None
    type: str
    priority: str
    order: int
    story_points: Optional[int] = None
    estimate: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    environment: Optional[str] = None
    affected_version: Optional[str] = None
    fix_version: Optional[str] = None
    project_id: str
    column_id: str
    assignee_id: Optional[str] = None
    creator_id: Optional[str] = None
    sprint_id: Optional[str] = None
    is_carried_over: bool
    carried_from_sprint_id: Optional[str] = None
    carried_over_count: int
    parent_id: Optional[str] = None
    # 多対多のラベルは別テーブルで接続する
    label_ids: list[str] = Field(default_factory=list)


class TicketLinkRecord(BundleModel):
    id: str
    link_type: str
    from_ticket_id: str
    to_ticket_id: str
    created_at: datetime


class TicketWatcherRecord(BundleModel):
    id: str
    created_at: datetime
    ticket_id: str
    user_id: str


class CommentRecord(BundleModel):
    id: str
    content: str
    created_at: datetime
    updated_at: datetime
    ticket_id: str
    author_id: str


class TicketEditRecord(BundleModel):
    id: str
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime
    ticket_id: str
    user_id: str


class AttachmentRecord(BundleModel):
    id: str
    filename: str
    mime_type: str
    size: int
    url: str
    created_at: datetime
    ticket_id: str
    uploader_id: Optional[str] = None


class TicketSprintHistoryRecord(BundleModel):
    id: str
    ticket_id: str
    sprint_id: str
    added_at: datetime
    removed_at: Optional[datetime] = None
    entry_type: str
    exit_status: Optional[str] = None
    carried_from_sprint_id: Optional[str] = None


class InvitationRecord(BundleModel):
    id: str
    email: str
    role: str
    token: str
    expires_at: datetime
    status: str
    created_at: datetime
    sender_id: Optional[str] = None
    project_id: str


class ExportData(BundleModel):
    """
    全モデルのレコード

    フィールドの並びがそのままFK安全なインポート順になる。
    """

    system_settings: Optional[SystemSettingsRecord] = None
    users: list[UserRecord]
    projects: list[ProjectRecord]
    roles: list[RoleRecord]
    columns: list[ColumnRecord]
    labels: list[LabelRecord]
    sprints: list[SprintRecord]
    project_members: list[ProjectMemberRecord]
    project_sprint_settings: list[ProjectSprintSettingsRecord]
    tickets: list[TicketRecord]
    ticket_links: list[TicketLinkRecord]
    ticket_watchers: list[TicketWatcherRecord]
    comments: list[CommentRecord]
    ticket_edits: list[TicketEditRecord]
    attachments: list[AttachmentRecord]
    ticket_sprint_history: list[TicketSprintHistoryRecord]
    invitations: list[InvitationRecord]


class ExportOptions(BundleModel):
    """ファイル同梱オプション"""

    include_attachments: bool = False
    include_avatars: bool = False

    @property
    def includes_files(self) -> bool:
        return self.include_attachments or self.include_avatars


class DatabaseExport(BundleModel):
    """平文のエクスポートファイル"""

    version: str
    exported_at: datetime
    exported_by: str
    encrypted: Literal[False] = False
    options: Optional[ExportOptions] = None
    data: ExportData


class EncryptedDatabaseExport(BundleModel):
    """暗号化されたエクスポートファイル（dataの代わりに暗号化フィールドを持つ）"""

    version: str
    exported_at: datetime
    exported_by: str
    encrypted: Literal[True] = True
    options: Optional[ExportOptions] = None
    ciphertext: str
    salt: str
    iv: str
    auth_tag: str


class ImportCounts(BundleModel):
    """インポートされたモデルごとの件数"""

    users: int = 0
    projects: int = 0
    roles: int = 0
    columns: int = 0
    labels: int = 0
    sprints: int = 0
    project_members: int = 0
    project_sprint_settings: int = 0
    tickets: int = 0
    ticket_links: int = 0
    ticket_watchers: int = 0
    comments: int = 0
    ticket_edits: int = 0
    attachments: int = 0
    ticket_sprint_history: int = 0
    invitations: int = 0


class FileRestoreResult(BundleModel):
    """ZIPからのファイル復元結果"""

    attachments_restored: int = 0
    attachments_missing: int = 0
    avatars_restored: int = 0
    avatars_missing: int = 0
    missing_files: list[str] = Field(default_factory=list)


class ImportResult(BundleModel):
    """
    インポート結果

    Attributes:
        counts: モデルごとの件数
        files: ファイル復元結果
        two_factor_reset: 2FAが強制的に無効化されたユーザー名
    """

    success: bool = True
    counts: ImportCounts
    files: FileRestoreResult
    two_factor_reset: list[str] = Field(default_factory=list)


class BackupPreview(BundleModel):
    """インポート前の確認用サマリ"""

    exported_at: datetime
    exported_by: Optional[str] = None
    is_zip: bool
    is_encrypted: bool
    includes_attachments: bool
    includes_avatars: bool
    counts: ImportCounts


class FileManifestEntry(BundleModel):
    url: str
    exists: bool


class FileManifest(BundleModel):
    """ZIPに同梱したファイルの一覧"""

    attachments: list[FileManifestEntry] = Field(default_factory=list)
    avatars: list[FileManifestEntry] = Field(default_factory=list)
