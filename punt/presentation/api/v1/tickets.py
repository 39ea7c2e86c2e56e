from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from punt.domain import permissions as perms
from punt.domain.exceptions import BadRequestError
from punt.infrastructure.database.models import Ticket
from punt.infrastructure.repositories.permission_repository import PermissionService
from punt.infrastructure.repositories.project_repository import ProjectService
from punt.infrastructure.repositories.ticket_repository import (
    TicketFilters,
    TicketService,
)
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.tickets import (
    TicketCreateRequest,
    TicketEditResponse,
    TicketMoveRequest,
    TicketMoveResponse,
    TicketResponse,
    TicketUpdateRequest,
    WatchResponse,
    build_ticket_response,
)

router = APIRouter()


def require_ticket_edit(ctx: ProjectContext, ticket: Ticket) -> None:
    """tickets.manage_any、または自分が作成者/担当者なら tickets.manage_own"""
    PermissionService(ctx.db).require_ticket_permission(
        ctx.user, ctx.project.id, (ticket.creator_id, ticket.assignee_id)
    )


def _ticket_response(ctx: ProjectContext, ticket: Ticket) -> TicketResponse:
    service = TicketService(ctx.db)
    return build_ticket_response(
        ctx.project,
        ticket,
        watchers=service.watchers_for([ticket.id]).get(ticket.id, []),
        counts=service.counts_for([ticket.id]).get(ticket.id),
    )


def _publish(
    publisher: EventPublisher, event_type: str, ticket: TicketResponse
) -> None:
    publisher.project(
        ticket.project_id,
        event_type,
        ticketId=ticket.id,
        ticket=ticket.model_dump(mode="json", by_alias=True),
    )


@router.get("", response_model=list[TicketResponse])
def list_tickets(
    type: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    assignee_id: Optional[str] = Query(default=None, alias="assigneeId"),
    sprint_id: Optional[str] = Query(default=None, alias="sprintId"),
    column_id: Optional[str] = Query(default=None, alias="columnId"),
    label_id: Optional[str] = Query(default=None, alias="labelId"),
    q: Optional[str] = Query(default=None),
    ctx: ProjectContext = Depends(get_project_context),
) -> list[TicketResponse]:
    """
    チケット一覧

    sprintId=backlog でスプリント未所属のチケットのみ。
    q はタイトルの部分一致、または "KEY-12" 形式のキー。200文字を超える分は無視する。
    """
    service = TicketService(ctx.db)
    tickets = service.list_tickets(
        ctx.project,
        TicketFilters(
            type=type,
            priority=priority,
            assignee_id=assignee_id,
            sprint_id=sprint_id,
            column_id=column_id,
            label_id=label_id,
            q=q,
        ),
    )
    ids = [t.id for t in tickets]
    watchers = service.watchers_for(ids)
    counts = service.counts_for(ids)
    return [
        build_ticket_response(
            ctx.project, t, watchers=watchers.get(t.id, []), counts=counts.get(t.id)
        )
        for t in tickets
    ]


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    body: TicketCreateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> TicketResponse:
    """
    チケット作成

    columnId 未指定なら先頭の列。作成者は自動でウォッチャーになる。
    """
    ctx.require(perms.TICKETS_CREATE)
    data = body.model_dump()
    if not data.get("column_id"):
        columns = ProjectService(ctx.db).list_columns(ctx.project.id)
        if not columns:
            raise BadRequestError("Project has no columns")
        data["column_id"] = columns[0].id

    ticket = TicketService(ctx.db).create_ticket(ctx.user, ctx.project, data)
    response = _ticket_response(ctx, ticket)
    _publish(publisher, "ticket.created", response)
    return response


@router.get("/{ticket_id}", response_model=TicketResponse)
def get_ticket(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> TicketResponse:
    ticket = TicketService(ctx.db).get_ticket(ctx.project.id, ticket_id)
    return _ticket_response(ctx, ticket)


@router.patch("/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    ticket_id: str,
    body: TicketUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> TicketResponse:
    """送られた項目のみ更新し、変更内容を編集履歴に残す"""
    service = TicketService(ctx.db)
    ticket = service.get_ticket(ctx.project.id, ticket_id)
    require_ticket_edit(ctx, ticket)
    ticket = service.update_ticket(ctx.user, ticket, body.model_dump(exclude_unset=True))
    response = _ticket_response(ctx, ticket)
    _publish(publisher, "ticket.updated", response)
    return response


@router.delete("/{ticket_id}", response_model=SuccessResponse)
def delete_ticket(
    ticket_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    service = TicketService(ctx.db)
    ticket = service.get_ticket(ctx.project.id, ticket_id)
    require_ticket_edit(ctx, ticket)
    service.delete_ticket(ticket)
    publisher.project(ctx.project.id, "ticket.deleted", ticketId=ticket_id)
    return SuccessResponse()


@router.post("/{ticket_id}/move", response_model=TicketMoveResponse)
def move_ticket(
    ticket_id: str,
    body: TicketMoveRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> TicketMoveResponse:
    """
    チケットを別プロジェクトへ移動する

    移動先では tickets.create が必要。
    """
    service = TicketService(ctx.db)
    ticket = service.get_ticket(ctx.project.id, ticket_id)
    require_ticket_edit(ctx, ticket)

    target = ProjectService(ctx.db).resolve(body.target_project_id)
    PermissionService(ctx.db).require_permission(
        ctx.user, target.id, perms.TICKETS_CREATE
    )

    result = service.move_to_project(ctx.user, ticket, target)
    moved = build_ticket_response(
        target,
        result.ticket,
        watchers=service.watchers_for([ticket.id]).get(ticket.id, []),
        counts=service.counts_for([ticket.id]).get(ticket.id),
    )
    publisher.project(
        result.source_project_id,
        "ticket.deleted",
        ticketId=ticket.id,
        movedToProjectId=result.target_project_id,
    )
    _publish(publisher, "ticket.created", moved)
    return TicketMoveResponse(
        ticket=moved,
        source_project_id=result.source_project_id,
        target_project_id=result.target_project_id,
    )


@router.get("/{ticket_id}/edits", response_model=list[TicketEditResponse])
def list_ticket_edits(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> list[TicketEditResponse]:
    """編集履歴（新しい順）"""
    service = TicketService(ctx.db)
    ticket = service.get_ticket(ctx.project.id, ticket_id)
    return [TicketEditResponse.model_validate(e) for e in service.list_edits(ticket.id)]


@router.post("/{ticket_id}/watch", response_model=WatchResponse)
def watch_ticket(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> WatchResponse:
    service = TicketService(ctx.db)
    service.watch(service.get_ticket(ctx.project.id, ticket_id), ctx.user)
    return WatchResponse(watching=True)


@router.delete("/{ticket_id}/watch", response_model=WatchResponse)
def unwatch_ticket(
    ticket_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> WatchResponse:
    service = TicketService(ctx.db)
    service.unwatch(service.get_ticket(ctx.project.id, ticket_id), ctx.user)
    return WatchResponse(watching=False)
