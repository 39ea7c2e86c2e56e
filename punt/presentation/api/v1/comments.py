from fastapi import APIRouter, Depends, status

from punt.infrastructure.repositories.comment_repository import CommentService
from punt.infrastructure.repositories.ticket_repository import TicketService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.tickets import CommentRequest, CommentResponse

router = APIRouter()


def _publish(
    publisher: EventPublisher, event_type: str, project_id: str, comment: CommentResponse
) -> None:
    publisher.project(
        project_id,
        event_type,
        ticketId=comment.ticket_id,
        comment=comment.model_dump(mode="json", by_alias=True),
    )


@router.get("", response_model=list[CommentResponse])
def list_comments(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> list[CommentResponse]:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    comments = CommentService(ctx.db).list_comments(ticket.id)
    return [CommentResponse.model_validate(c) for c in comments]


@router.post("", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
def create_comment(
    ticket_id: str,
    body: CommentRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> CommentResponse:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    comment = CommentService(ctx.db).create_comment(ctx.user, ticket, body.content)
    response = CommentResponse.model_validate(comment)
    _publish(publisher, "comment.created", ctx.project.id, response)
    return response


@router.patch("/{comment_id}", response_model=CommentResponse)
def update_comment(
    ticket_id: str,
    comment_id: str,
    body: CommentRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> CommentResponse:
    """本人、または comments.manage_any を持つメンバーのみ編集できる"""
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    service = CommentService(ctx.db)
    comment = service.update_comment(
        ctx.user, ticket, service.get_comment(ticket.id, comment_id), body.content
    )
    response = CommentResponse.model_validate(comment)
    _publish(publisher, "comment.updated", ctx.project.id, response)
    return response


@router.delete("/{comment_id}", response_model=SuccessResponse)
def delete_comment(
    ticket_id: str,
    comment_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    service = CommentService(ctx.db)
    service.delete_comment(ctx.user, ticket, service.get_comment(ticket.id, comment_id))
    publisher.project(
        ctx.project.id, "comment.deleted", ticketId=ticket.id, commentId=comment_id
    )
    return SuccessResponse()
