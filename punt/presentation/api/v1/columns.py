from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from punt.domain import permissions as perms
from punt.infrastructure.repositories.project_repository import ProjectService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.projects import (
    ColumnCreateRequest,
    ColumnResponse,
    ColumnUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=list[ColumnResponse])
def list_columns(
    ctx: ProjectContext = Depends(get_project_context),
) -> list[ColumnResponse]:
    columns = ProjectService(ctx.db).list_columns(ctx.project.id)
    return [ColumnResponse.model_validate(c) for c in columns]


@router.post("", response_model=ColumnResponse, status_code=status.HTTP_201_CREATED)
def create_column(
    body: ColumnCreateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> ColumnResponse:
    ctx.require(perms.BOARD_MANAGE)
    column = ProjectService(ctx.db).create_column(ctx.project.id, body.name, body.order)
    response = ColumnResponse.model_validate(column)
    publisher.project(
        ctx.project.id, "column.created", column=response.model_dump(mode="json", by_alias=True)
    )
    return response


@router.patch("/{column_id}", response_model=ColumnResponse)
def update_column(
    column_id: str,
    body: ColumnUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> ColumnResponse:
    ctx.require(perms.BOARD_MANAGE)
    service = ProjectService(ctx.db)
    column = service.update_column(
        service.get_column(ctx.project.id, column_id), body.name, body.order
    )
    response = ColumnResponse.model_validate(column)
    publisher.project(
        ctx.project.id, "column.updated", column=response.model_dump(mode="json", by_alias=True)
    )
    return response


@router.delete("/{column_id}", response_model=SuccessResponse)
def delete_column(
    column_id: str,
    move_tickets_to: Optional[str] = Query(default=None, alias="moveTicketsTo"),
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    """
    列を削除する

    チケットが残っている列は moveTicketsTo で移動先の列を指定する。
    """
    ctx.require(perms.BOARD_MANAGE)
    service = ProjectService(ctx.db)
    service.delete_column(service.get_column(ctx.project.id, column_id), move_tickets_to)
    publisher.project(
        ctx.project.id,
        "column.deleted",
        columnId=column_id,
        moveTicketsTo=move_tickets_to,
    )
    return SuccessResponse()
