"""
添付ファイルサービス

許可するMIMEタイプ・サイズ・1チケットあたりの上限はシステム設定に従う。
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import permissions as perms
from punt.domain.exceptions import BadRequestError, ForbiddenError, NotFoundError

from ..database.models import Attachment, Ticket, User
from ..uploads import delete_upload, save_upload
from .permission_repository import PermissionService
from .system_settings_repository import SystemSettingsService

logger = get_logger(__name__)


@dataclass
class UploadedFile:
    """アップロードされたファイル"""

    filename: str
    content_type: Optional[str]
    content: bytes


class AttachmentService:
    def __init__(self, db: DBSession):
        self.db = db
        self.permissions = PermissionService(db)

    def list_attachments(self, ticket_id: str) -> list[Attachment]:
        return list(
            self.db.scalars(
                select(Attachment)
                .where(Attachment.ticket_id == ticket_id)
                .order_by(Attachment.created_at)
            ).all()
        )

    def add_attachments(
        self, actor: User, ticket: Ticket, files: list[UploadedFile]
    ) -> list[Attachment]:
        """
        ファイルを検証して保存する

        検証はすべてのファイルに対して先に行い、一つでも不正なら何も保存しない。

        Raises:
            BadRequestError: ファイル無し、形式・サイズ・件数の上限違反
        """
        if not files:
            raise BadRequestError("No files provided")

        policy = SystemSettingsService(self.db).upload_policy()
        for file in files:
            mime_type = file.content_type or ""
            if mime_type not in policy.allowed_types:
                raise BadRequestError(f"File type not allowed: {mime_type}")
            max_size = policy.max_size_for(mime_type)
            if len(file.content) > max_size:
                raise BadRequestError(
                    f"File too large: {file.filename}. "
                    f"Maximum size is {round(max_size / 1024 / 1024)}MB"
                )

        existing_count = (
            self.db.scalar(
                select(func.count())
                .select_from(Attachment)
                .where(Attachment.ticket_id == ticket.id)
            )
            or 0
        )
        if existing_count + len(files) > policy.max_attachments_per_ticket:
            raise BadRequestError(
                f"Cannot add {len(files)} attachments. Ticket already has "
                f"{existing_count} of {policy.max_attachments_per_ticket} maximum attachments."
            )

        created = []
        for file in files:
            attachment = Attachment(
                ticket_id=ticket.id,
                uploader_id=actor.id,
                filename=file.filename,
                mime_type=file.content_type or "",
                size=len(file.content),
                url=save_upload("attachments", file.filename, file.content),
            )
            self.db.add(attachment)
            created.append(attachment)
        self.db.commit()
        for attachment in created:
            self.db.refresh(attachment)
        return created

    def delete_attachment(self, actor: User, ticket: Ticket, attachment_id: str) -> None:
        """添付ファイルを削除する（アップロードした本人または attachments.manage_any）"""
        attachment = self.db.scalar(
            select(Attachment).where(
                Attachment.id == attachment_id, Attachment.ticket_id == ticket.id
            )
        )
        if attachment is None:
            raise NotFoundError("Attachment not found")

        if attachment.uploader_id != actor.id and not self.permissions.has_permission(
            actor, ticket.project_id, perms.ATTACHMENTS_MANAGE_ANY
        ):
            raise ForbiddenError("You can only delete your own attachments")

        url = attachment.url
        self.db.delete(attachment)
        self.db.commit()
        delete_upload(url)
        logger.info(f"Attachment deleted: {attachment_id}")
