"""データベースエクスポート"""

import io
import json
import zipfile
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from punt.core.logging import get_logger

from ..database.models import (
    SYSTEM_SETTINGS_ID,
    Attachment,
    BoardColumn,
    Comment,
    Invitation,
    Label,
    Project,
    ProjectMember,
    ProjectSprintSettings,
    Role,
    Sprint,
    SystemSettings,
    Ticket,
    TicketEdit,
    TicketLink,
    TicketSprintHistory,
    TicketWatcher,
    User,
    utcnow,
)
from ..uploads import url_to_path
from .crypto import encrypt
from .models import (
    EXPORT_VERSION,
    AttachmentRecord,
    ColumnRecord,
    CommentRecord,
    DatabaseExport,
    EncryptedDatabaseExport,
    ExportData,
    ExportOptions,
    FileManifest,
    FileManifestEntry,
    InvitationRecord,
    LabelRecord,
    ProjectMemberRecord,
    ProjectRecord,
    ProjectSprintSettingsRecord,
    RoleRecord,
    SprintRecord,
    SystemSettingsRecord,
    TicketEditRecord,
    TicketLinkRecord,
    TicketRecord,
    TicketSprintHistoryRecord,
    TicketWatcherRecord,
    UserRecord,
)

logger = get_logger(__name__)

BACKUP_JSON_NAME = "backup.json"
ZIP_FILES_PREFIX = "files"


@dataclass
class ExportArtifact:
    """
    エクスポート結果

    Attributes:
        content: ファイル内容
        filename: punt-backup-YYYY-MM-DD.(json|zip)
        media_type: Content-Type
        manifest: ZIPに同梱したファイル一覧（JSONの場合はNone）
    """

    content: bytes
    filename: str
    media_type: str
    manifest: Optional[FileManifest] = None


def export_database(db: Session) -> ExportData:
    """
    全テーブルをFK安全な順序で読み出す

    Args:
        db: DBセッション

    Returns:
        ExportData
    """
    settings_row = db.get(SystemSettings, SYSTEM_SETTINGS_ID)

    tickets = []
    for ticket in db.scalars(select(Ticket).order_by(Ticket.created_at)).all():
        record = TicketRecord.model_validate(ticket)
        record.label_ids = [label.id for label in ticket.labels]
        tickets.append(record)

    data = ExportData(
        system_settings=(
            SystemSettingsRecord.model_validate(settings_row) if settings_row else None
        ),
        users=[
            UserRecord.model_validate(u)
            for u in db.scalars(select(User).order_by(User.created_at)).all()
        ],
        projects=[
            ProjectRecord.model_validate(p)
            for p in db.scalars(select(Project).order_by(Project.created_at)).all()
        ],
        roles=[
            RoleRecord.model_validate(r)
            for r in db.scalars(select(Role).order_by(Role.created_at)).all()
        ],
        columns=[
            ColumnRecord.model_validate(c)
            for c in db.scalars(select(BoardColumn).order_by(BoardColumn.order)).all()
        ],
        labels=[
            LabelRecord.model_validate(label)
            for label in db.scalars(select(Label).order_by(Label.name)).all()
        ],
        sprints=[
            SprintRecord.model_validate(s)
            for s in db.scalars(select(Sprint).order_by(Sprint.created_at)).all()
        ],
        project_members=[
            ProjectMemberRecord.model_validate(m)
            for m in db.scalars(
                select(ProjectMember).order_by(ProjectMember.created_at)
            ).all()
        ],
        project_sprint_settings=[
            ProjectSprintSettingsRecord.model_validate(s)
            for s in db.scalars(select(ProjectSprintSettings)).all()
        ],
        tickets=tickets,
        ticket_links=[
            TicketLinkRecord.model_validate(link)
            for link in db.scalars(
                select(TicketLink).order_by(TicketLink.created_at)
            ).all()
        ],
        ticket_watchers=[
            TicketWatcherRecord.model_validate(w)
            for w in db.scalars(
                select(TicketWatcher).order_by(TicketWatcher.created_at)
            ).all()
        ],
        comments=[
            CommentRecord.model_validate(c)
            for c in db.scalars(select(Comment).order_by(Comment.created_at)).all()
        ],
        ticket_edits=[
            TicketEditRecord.model_validate(e)
            for e in db.scalars(select(TicketEdit).order_by(TicketEdit.created_at)).all()
        ],
        attachments=[
            AttachmentRecord.model_validate(a)
            for a in db.scalars(select(Attachment).order_by(Attachment.created_at)).all()
        ],
        ticket_sprint_history=[
            TicketSprintHistoryRecord.model_validate(h)
            for h in db.scalars(
                select(TicketSprintHistory).order_by(TicketSprintHistory.added_at)
            ).all()
        ],
        invitations=[
            InvitationRecord.model_validate(i)
            for i in db.scalars(select(Invitation).order_by(Invitation.created_at)).all()
        ],
    )

    logger.info(
        f"Exported {len(data.users)} users, {len(data.projects)} projects, "
        f"{len(data.tickets)} tickets"
    )
    return data


def build_export_bundle(
    data: ExportData,
    exported_by: str,
    options: ExportOptions,
    password: Optional[str] = None,
) -> dict[str, Any]:
    """
    エクスポートファイルのJSON構造を組み立てる

    passwordが指定された場合、dataを暗号化フィールドに置き換える。
    """
    exported_at = utcnow()

    if password:
        payload = encrypt(data.model_dump_json(by_alias=True), password)
        encrypted = EncryptedDatabaseExport(
            version=EXPORT_VERSION,
            exported_at=exported_at,
            exported_by=exported_by,
            options=options,
            ciphertext=payload.ciphertext,
            salt=payload.salt,
            iv=payload.iv,
            auth_tag=payload.auth_tag,
        )
        return encrypted.model_dump(mode="json", by_alias=True)

    plain = DatabaseExport(
        version=EXPORT_VERSION,
        exported_at=exported_at,
        exported_by=exported_by,
        options=options,
        data=data,
    )
    return plain.model_dump(mode="json", by_alias=True)


def generate_export_filename(include_files: bool) -> str:
    """エクスポートファイル名（punt-backup-YYYY-MM-DD.json / .zip）"""
    extension = "zip" if include_files else "json"
    return f"punt-backup-{utcnow().strftime('%Y-%m-%d')}.{extension}"


def _add_file(zf: zipfile.ZipFile, url: str) -> bool:
    path = url_to_path(url)
    if path is None or not path.is_file():
        return False
    # ZIP内では files/ 以下にURLの構造を保って格納
    zf.write(path, arcname=f"{ZIP_FILES_PREFIX}{url}")
    return True


def build_export_zip(
    bundle: dict[str, Any], data: ExportData, options: ExportOptions
) -> tuple[bytes, FileManifest]:
    """
    backup.json と参照ファイルをZIPにまとめる

    Returns:
        (ZIPバイト列, マニフェスト)
    """
    manifest = FileManifest()
    buffer = io.BytesIO()

    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(BACKUP_JSON_NAME, json.dumps(bundle, indent=2))

        if options.include_attachments:
            for attachment in data.attachments:
                if attachment.url:
                    exists = _add_file(zf, attachment.url)
                    manifest.attachments.append(
                        FileManifestEntry(url=attachment.url, exists=exists)
                    )

        if options.include_avatars:
            for user in data.users:
                if user.avatar:
                    exists = _add_file(zf, user.avatar)
                    manifest.avatars.append(
                        FileManifestEntry(url=user.avatar, exists=exists)
                    )

    missing = [e.url for e in manifest.attachments + manifest.avatars if not e.exists]
    if missing:
        logger.warning(f"{len(missing)} referenced files were not found on disk")

    return buffer.getvalue(), manifest


def create_export(
    db: Session,
    exported_by: str,
    options: Optional[ExportOptions] = None,
    password: Optional[str] = None,
) -> ExportArtifact:
    """
    エクスポートファイルを生成する

    ファイル同梱オプションがなければJSON、あればZIPを返す。

    Args:
        db: DBセッション
        exported_by: エクスポートを実行したユーザーID
        options: ファイル同梱オプション
        password: 暗号化パスワード（任意）

    Returns:
        ExportArtifact
    """
    options = options or ExportOptions()
    data = export_database(db)
    bundle = build_export_bundle(data, exported_by, options, password)

    if options.includes_files:
        content, manifest = build_export_zip(bundle, data, options)
        return ExportArtifact(
            content=content,
            filename=generate_export_filename(True),
            media_type="application/zip",
            manifest=manifest,
        )

    return ExportArtifact(
        content=json.dumps(bundle, indent=2).encode("utf-8"),
        filename=generate_export_filename(False),
        media_type="application/json",
    )
