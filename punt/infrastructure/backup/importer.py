"""
データベースインポート

エクスポートファイル（JSONまたはZIP）を解析・検証し、
既存データを全削除したうえで1トランザクションで書き戻す。
ZIPに同梱されたファイルはコミット後に UPLOAD_DIR へ復元する。
"""

import io
import json
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from punt.core.logging import get_logger
from punt.domain.exceptions import BackupError

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
    ticket_labels,
)
from ..uploads import url_to_path
from .crypto import DecryptionError, EncryptedPayload, decrypt
from .exporter import BACKUP_JSON_NAME, ZIP_FILES_PREFIX
from .models import (
    COMPATIBLE_VERSIONS,
    BackupPreview,
    DatabaseExport,
    EncryptedDatabaseExport,
    ExportData,
    ExportOptions,
    FileRestoreResult,
    ImportCounts,
    ImportResult,
)
from .wipe import delete_all_data

logger = get_logger(__name__)

# 500MB
MAX_BACKUP_SIZE = 500 * 1024 * 1024
ZIP_MAGIC = b"PK\x03\x04"

_export_adapter: TypeAdapter[Union[DatabaseExport, EncryptedDatabaseExport]] = (
    TypeAdapter(Union[DatabaseExport, EncryptedDatabaseExport])
)


@dataclass
class ParsedExport:
    """
    解析済みのエクスポートファイル

    Attributes:
        data: 全モデルのレコード
        options: エクスポート時のファイル同梱オプション
        exported_at: エクスポート日時
        exported_by: エクスポートしたユーザーID
        is_zip: ZIP形式かどうか
        is_encrypted: 暗号化されていたかどうか
        zip_bytes: ZIPの場合はその内容
    """

    data: ExportData
    options: ExportOptions
    exported_at: datetime
    exported_by: Optional[str]
    is_zip: bool
    is_encrypted: bool
    zip_bytes: Optional[bytes] = None


def is_zip_file(content: bytes) -> bool:
    """マジックバイトでZIPかどうか判定する"""
    return content[:4] == ZIP_MAGIC


def _read_backup_json_from_zip(content: bytes) -> bytes:
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as zf:
            if BACKUP_JSON_NAME not in zf.namelist():
                raise BackupError("backup.json not found in ZIP archive")
            info = zf.getinfo(BACKUP_JSON_NAME)
            if info.file_size > MAX_BACKUP_SIZE:
                raise BackupError("Backup file too large (max 500MB)")
            return zf.read(BACKUP_JSON_NAME)
    except zipfile.BadZipFile as e:
        raise BackupError("Invalid ZIP archive") from e


def _parse_backup_json(
    raw: bytes, password: Optional[str]
) -> tuple[ExportData, Optional[ExportOptions], datetime, str, bool]:
    """
    backup.json の内容を検証し、必要なら復号する

    Returns:
        (data, options, exported_at, exported_by, is_encrypted)
    """
    if len(raw) > MAX_BACKUP_SIZE:
        raise BackupError("Backup file too large (max 500MB)")

    try:
        parsed: Any = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as e:
        raise BackupError("Invalid JSON format") from e

    try:
        export_file = _export_adapter.validate_python(parsed)
    except PydanticValidationError as e:
        raise BackupError("Invalid export file structure") from e

    if export_file.version not in COMPATIBLE_VERSIONS:
        raise BackupError(
            f"Incompatible export version: {export_file.version}. "
            f"Expected one of: {', '.join(dict.fromkeys(COMPATIBLE_VERSIONS))}"
        )

    if isinstance(export_file, DatabaseExport):
        return (
            export_file.data,
            export_file.options,
            export_file.exported_at,
            export_file.exported_by,
            False,
        )

    if not password:
        raise BackupError("This backup is encrypted. Please provide the password.")

    try:
        decrypted = decrypt(
            EncryptedPayload(
                ciphertext=export_file.ciphertext,
                salt=export_file.salt,
                iv=export_file.iv,
                auth_tag=export_file.auth_tag,
            ),
            password,
        )
    except DecryptionError as e:
        raise BackupError("Incorrect password or corrupted data") from e

    try:
        decrypted_data = json.loads(decrypted)
    except ValueError as e:
        raise BackupError("Decrypted data is not valid JSON") from e

    try:
        data = ExportData.model_validate(decrypted_data)
    except PydanticValidationError as e:
        raise BackupError("Decrypted data has invalid structure") from e

    return (
        data,
        export_file.options,
        export_file.exported_at,
        export_file.exported_by,
        True,
    )


def parse_export_file(content: bytes, password: Optional[str] = None) -> ParsedExport:
    """
    エクスポートファイル（ZIPまたはJSON）を解析する

    Args:
        content: ファイル内容
        password: 暗号化されている場合の復号パスワード

    Returns:
        ParsedExport

    Raises:
        BackupError: 解析・検証・復号のいずれかに失敗した場合
    """
    if len(content) > MAX_BACKUP_SIZE:
        raise BackupError("Backup file too large (max 500MB)")

    is_zip = is_zip_file(content)
    raw = _read_backup_json_from_zip(content) if is_zip else content

    data, options, exported_at, exported_by, is_encrypted = _parse_backup_json(
        raw, password
    )

    return ParsedExport(
        data=data,
        options=options or ExportOptions(),
        exported_at=exported_at,
        exported_by=exported_by,
        is_zip=is_zip,
        is_encrypted=is_encrypted,
        zip_bytes=content if is_zip else None,
    )


def count_records(data: ExportData) -> ImportCounts:
    """モデルごとのレコード数"""
    return ImportCounts(
        users=len(data.users),
        projects=len(data.projects),
        roles=len(data.roles),
        columns=len(data.columns),
        labels=len(data.labels),
        sprints=len(data.sprints),
        project_members=len(data.project_members),
        project_sprint_settings=len(data.project_sprint_settings),
        tickets=len(data.tickets),
        ticket_links=len(data.ticket_links),
        ticket_watchers=len(data.ticket_watchers),
        comments=len(data.comments),
        ticket_edits=len(data.ticket_edits),
        attachments=len(data.attachments),
        ticket_sprint_history=len(data.ticket_sprint_history),
        invitations=len(data.invitations),
    )


def preview_export(parsed: ParsedExport) -> BackupPreview:
    """インポート前の確認用サマリを作成する"""
    return BackupPreview(
        exported_at=parsed.exported_at,
        exported_by=parsed.exported_by,
        is_zip=parsed.is_zip,
        is_encrypted=parsed.is_encrypted,
        includes_attachments=parsed.options.include_attachments,
        includes_avatars=parsed.options.include_avatars,
        counts=count_records(parsed.data),
    )


def _insert_rows(db: Session, model: Any, rows: list[dict[str, Any]]) -> None:
    if rows:
        db.execute(insert(model), rows)


def _apply(db: Session, data: ExportData) -> list[str]:
    """
    FK安全な順序で全レコードを挿入する

    Returns:
        2FAをリセットしたユーザー名
    """
    if data.system_settings is not None:
        db.merge(SystemSettings(**data.system_settings.model_dump()))
    elif db.get(SystemSettings, SYSTEM_SETTINGS_ID) is None:
        db.add(SystemSettings(id=SYSTEM_SETTINGS_ID))

    two_factor_reset: list[str] = []
    user_rows = []
    for user in data.users:
        row = user.model_dump(exclude={"totp_enabled"})
        # 2FAシークレットは持ち込まない。有効だったユーザーは再設定が必要
        row.update(
            totp_enabled=False,
            totp_secret=None,
            totp_recovery_codes=None,
            mcp_api_key=None,
        )
        if user.totp_enabled:
            two_factor_reset.append(user.username)
        user_rows.append(row)
    _insert_rows(db, User, user_rows)

    _insert_rows(db, Project, [r.model_dump() for r in data.projects])
    _insert_rows(db, Role, [r.model_dump() for r in data.roles])
    _insert_rows(db, BoardColumn, [r.model_dump() for r in data.columns])
    _insert_rows(db, Label, [r.model_dump() for r in data.labels])
    _insert_rows(db, Sprint, [r.model_dump() for r in data.sprints])
    _insert_rows(db, ProjectMember, [r.model_dump() for r in data.project_members])
    _insert_rows(
        db,
        ProjectSprintSettings,
        [r.model_dump() for r in data.project_sprint_settings],
    )

    # 親チケットは自己参照FKのため、一旦NoneでINSERTしてから後で接続する
    _insert_rows(
        db,
        Ticket,
        [
            {**r.model_dump(exclude={"label_ids", "parent_id"}), "parent_id": None}
            for r in data.tickets
        ],
    )
    for ticket in data.tickets:
        if ticket.parent_id:
            db.execute(
                update(Ticket)
                .where(Ticket.id == ticket.id)
                .values(parent_id=ticket.parent_id, updated_at=ticket.updated_at)
            )
    label_rows = [
        {"ticket_id": ticket.id, "label_id": label_id}
        for ticket in data.tickets
        for label_id in dict.fromkeys(ticket.label_ids)
    ]
    if label_rows:
        db.execute(insert(ticket_labels), label_rows)

    _insert_rows(db, TicketLink, [r.model_dump() for r in data.ticket_links])
    _insert_rows(db, TicketWatcher, [r.model_dump() for r in data.ticket_watchers])
    _insert_rows(db, Comment, [r.model_dump() for r in data.comments])
    _insert_rows(db, TicketEdit, [r.model_dump() for r in data.ticket_edits])
    _insert_rows(db, Attachment, [r.model_dump() for r in data.attachments])
    _insert_rows(
        db,
        TicketSprintHistory,
        [r.model_dump() for r in data.ticket_sprint_history],
    )
    _insert_rows(db, Invitation, [r.model_dump() for r in data.invitations])

    return two_factor_reset


def _restore_file(zf: zipfile.ZipFile, names: set[str], url: str) -> bool:
    arcname = f"{ZIP_FILES_PREFIX}{url}"
    if arcname not in names:
        return False
    dest = url_to_path(url)
    if dest is None:
        return False
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(zf.read(arcname))
    except (OSError, zipfile.BadZipFile) as e:
        logger.warning(f"Failed to restore {url}: {e}")
        return False
    return True


def restore_files_from_zip(
    zip_bytes: bytes, data: ExportData, options: ExportOptions
) -> FileRestoreResult:
    """
    ZIPの files/ 以下から添付ファイル・アバターを復元する

    ZIP内に実体が見つかったものだけを「復元済み」として数える。
    """
    result = FileRestoreResult()

    with zipfile.ZipFile(io.BytesIO(zip_bytes)) as zf:
        names = {
            info.filename
            for info in zf.infolist()
            if info.filename.startswith(f"{ZIP_FILES_PREFIX}/") and not info.is_dir()
        }

        if options.include_attachments:
            for attachment in data.attachments:
                if not attachment.url:
                    continue
                if _restore_file(zf, names, attachment.url):
                    result.attachments_restored += 1
                else:
                    result.attachments_missing += 1
                    result.missing_files.append(attachment.url)

        if options.include_avatars:
            for user in data.users:
                if not user.avatar:
                    continue
                if _restore_file(zf, names, user.avatar):
                    result.avatars_restored += 1
                else:
                    result.avatars_missing += 1
                    result.missing_files.append(user.avatar)

    return result


def import_database(
    db: Session,
    data: ExportData,
    zip_bytes: Optional[bytes] = None,
    options: Optional[ExportOptions] = None,
) -> ImportResult:
    """
    既存データを全削除してインポートする

    Args:
        db: DBセッション
        data: インポートするデータ
        zip_bytes: ファイルを同梱したZIP（任意）
        options: エクスポート時のファイル同梱オプション

    Returns:
        ImportResult

    Raises:
        BackupError: データの整合性が取れずに挿入できなかった場合
    """
    options = options or ExportOptions()

    # アバター同梱のはずがZIPが無い場合、参照切れになるので消去する
    if options.include_avatars and zip_bytes is None:
        data = data.model_copy(
            update={
                "users": [u.model_copy(update={"avatar": None}) for u in data.users]
            }
        )

    try:
        delete_all_data(db)
        db.flush()
        two_factor_reset = _apply(db, data)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Import failed due to constraint violation: {e}")
        raise BackupError(
            "Backup data violates database constraints and could not be imported"
        ) from e
    except Exception:
        db.rollback()
        raise

    # セッションに残っている旧データのオブジェクトを破棄
    db.expunge_all()

    files = FileRestoreResult()
    if zip_bytes is not None:
        files = restore_files_from_zip(zip_bytes, data, options)

    counts = count_records(data)
    logger.info(
        f"Imported {counts.users} users, {counts.projects} projects, "
        f"{counts.tickets} tickets"
    )
    if two_factor_reset:
        logger.warning(f"2FA reset for {len(two_factor_reset)} imported users")

    return ImportResult(
        success=True, counts=counts, files=files, two_factor_reset=two_factor_reset
    )
