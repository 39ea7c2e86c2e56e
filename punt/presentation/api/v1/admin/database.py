import base64
import binascii

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from punt.core.logging import get_logger
from punt.domain.exceptions import BadRequestError
from punt.infrastructure.backup import (
    ExportOptions,
    ImportResult,
    create_export,
    import_database,
    parse_export_file,
    preview_export,
    wipe_database,
    wipe_projects,
)
from punt.infrastructure.backup.models import BackupPreview
from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import User
from punt.infrastructure.events import DATABASE_CHANNEL
from punt.infrastructure.repositories.user_repository import (
    require_strong_password,
    validate_username,
)
from punt.infrastructure.security.password import hash_password
from punt.presentation.api.deps import (
    EventPublisher,
    get_publisher,
    rate_limit,
    require_admin,
    require_reauth,
)
from punt.presentation.schemas.admin import (
    IMPORT_CONFIRM_TEXT,
    WIPE_CONFIRM_TEXT,
    WIPE_PROJECTS_CONFIRM_TEXT,
    DatabaseExportRequest,
    DatabaseImportRequest,
    DatabasePreviewRequest,
    DatabaseWipeProjectsRequest,
    DatabaseWipeProjectsResponse,
    DatabaseWipeRequest,
    DatabaseWipeResponse,
)
from punt.utils.session_helper import delete_session

router = APIRouter(dependencies=[Depends(rate_limit("admin/database"))])
logger = get_logger(__name__)


def _require_confirmation(confirm_text: str, expected: str) -> None:
    if confirm_text != expected:
        raise BadRequestError(f'Please type "{expected}" to confirm')


def _decode_content(content: str) -> bytes:
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise BadRequestError("Invalid file content encoding") from e


@router.post("/export")
def export_database(
    body: DatabaseExportRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
) -> Response:
    """
    データベースのエクスポート

    ファイル同梱オプションが無ければJSON、あればZIPをダウンロードさせる。
    password を指定するとデータ部分を暗号化する。
    """
    require_reauth(db, admin, body)
    artifact = create_export(
        db,
        admin.id,
        ExportOptions(
            include_attachments=body.include_attachments,
            include_avatars=body.include_avatars,
        ),
        password=body.password or None,
    )
    logger.info(f"Database exported by {admin.username}: {artifact.filename}")
    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@router.post("/preview", response_model=BackupPreview)
def preview_database_import(
    body: DatabasePreviewRequest,
    admin: User = Depends(require_admin),
) -> BackupPreview:
    """インポート前の内容確認（件数・エクスポート日時など）。DBは変更しない"""
    parsed = parse_export_file(_decode_content(body.content), body.decryption_password)
    return preview_export(parsed)


@router.post("/import", response_model=ImportResult)
def import_database_backup(
    body: DatabaseImportRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    publisher: EventPublisher = Depends(get_publisher),
) -> ImportResult:
    """
    バックアップからのインポート

    既存のデータはすべて置き換えられ、全セッションが失効する。
    インポートしたユーザーの2FAはリセットされる。
    """
    _require_confirmation(body.confirm_text, IMPORT_CONFIRM_TEXT)
    require_reauth(db, admin, body)

    parsed = parse_export_file(_decode_content(body.content), body.decryption_password)
    admin_username = admin.username
    result = import_database(db, parsed.data, parsed.zip_bytes, parsed.options)
    logger.warning(f"Database imported by {admin_username}")

    delete_session(db, request, response)
    publisher.publish(DATABASE_CHANNEL, "database.wiped")
    return result


@router.post("/wipe", response_model=DatabaseWipeResponse)
def wipe_all_data(
    body: DatabaseWipeRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    publisher: EventPublisher = Depends(get_publisher),
) -> DatabaseWipeResponse:
    """
    全データ削除

    システム設定以外を削除し、指定された資格情報で新しい管理者を作成する。
    """
    _require_confirmation(body.confirm_text, WIPE_CONFIRM_TEXT)
    require_reauth(db, admin, body)
    validate_username(body.username)
    require_strong_password(body.password)

    operator = admin.username
    new_admin = wipe_database(db, body.username, hash_password(body.password))
    logger.warning(f"Database wiped by {operator}; new admin {new_admin.username}")

    delete_session(db, request, response)
    publisher.publish(DATABASE_CHANNEL, "database.wiped")
    return DatabaseWipeResponse(admin_username=new_admin.username)


@router.post("/wipe-projects", response_model=DatabaseWipeProjectsResponse)
def wipe_all_projects(
    body: DatabaseWipeProjectsRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    publisher: EventPublisher = Depends(get_publisher),
) -> DatabaseWipeProjectsResponse:
    """ユーザーを残してプロジェクトと配下のデータをすべて削除する"""
    _require_confirmation(body.confirm_text, WIPE_PROJECTS_CONFIRM_TEXT)
    require_reauth(db, admin, body)

    deleted = wipe_projects(db)
    logger.warning(f"All projects wiped by {admin.username}")
    publisher.publish(DATABASE_CHANNEL, "database.projects.wiped")
    return DatabaseWipeProjectsResponse(deleted=deleted)
