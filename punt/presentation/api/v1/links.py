from fastapi import APIRouter, Depends, status

from punt.infrastructure.repositories.link_repository import LinkService
from punt.infrastructure.repositories.ticket_repository import TicketService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.api.v1.tickets import require_ticket_edit
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.tickets import LinkCreateRequest, LinkResponse

router = APIRouter()


@router.get("", response_model=list[LinkResponse])
def list_links(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> list[LinkResponse]:
    """リンク一覧（direction は outward / inward）"""
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    return [
        LinkResponse.from_view(ctx.project, view)
        for view in LinkService(ctx.db).list_links(ticket)
    ]


@router.post("", response_model=LinkResponse, status_code=status.HTTP_201_CREATED)
def create_link(
    ticket_id: str,
    body: LinkCreateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> LinkResponse:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    require_ticket_edit(ctx, ticket)
    view = LinkService(ctx.db).create_link(ticket, body.link_type, body.target_ticket_id)
    response = LinkResponse.from_view(ctx.project, view)
    publisher.project(
        ctx.project.id,
        "link.created",
        ticketId=ticket.id,
        linkedTicketId=view.linked_ticket.id,
    )
    return response


@router.delete("/{link_id}", response_model=SuccessResponse)
def delete_link(
    ticket_id: str,
    link_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    require_ticket_edit(ctx, ticket)
    LinkService(ctx.db).delete_link(ticket, link_id)
    publisher.project(ctx.project.id, "link.deleted", ticketId=ticket.id, linkId=link_id)
    return SuccessResponse()
