from fastapi import APIRouter, Depends, File, UploadFile, status

from punt.infrastructure.repositories.attachment_repository import (
    AttachmentService,
    UploadedFile,
)
from punt.infrastructure.repositories.ticket_repository import TicketService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.tickets import AttachmentResponse

router = APIRouter()


@router.get("", response_model=list[AttachmentResponse])
def list_attachments(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> list[AttachmentResponse]:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    return [
        AttachmentResponse.model_validate(a)
        for a in AttachmentService(ctx.db).list_attachments(ticket.id)
    ]


@router.post(
    "", response_model=list[AttachmentResponse], status_code=status.HTTP_201_CREATED
)
async def upload_attachments(
    ticket_id: str,
    files: list[UploadFile] = File(...),
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> list[AttachmentResponse]:
    """
    添付ファイルのアップロード（multipart、フィールド名 files）

    形式・サイズ・件数の上限はシステム設定に従う。
    """
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    uploaded = [
        UploadedFile(
            filename=f.filename or "file",
            content_type=f.content_type,
            content=await f.read(),
        )
        for f in files
    ]
    created = AttachmentService(ctx.db).add_attachments(ctx.user, ticket, uploaded)
    responses = [AttachmentResponse.model_validate(a) for a in created]
    publisher.project(
        ctx.project.id,
        "attachment.created",
        ticketId=ticket.id,
        attachments=[r.model_dump(mode="json", by_alias=True) for r in responses],
    )
    return responses


@router.delete("/{attachment_id}", response_model=SuccessResponse)
def delete_attachment(
    ticket_id: str,
    attachment_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    AttachmentService(ctx.db).delete_attachment(ctx.user, ticket, attachment_id)
    publisher.project(
        ctx.project.id,
        "attachment.deleted",
        ticketId=ticket.id,
        attachmentId=attachment_id,
    )
    return SuccessResponse()
