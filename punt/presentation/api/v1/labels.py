from fastapi import APIRouter, Depends, status

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
    LabelCreateRequest,
    LabelResponse,
    LabelUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=list[LabelResponse])
def list_labels(ctx: ProjectContext = Depends(get_project_context)) -> list[LabelResponse]:
    labels = ProjectService(ctx.db).list_labels(ctx.project.id)
    return [LabelResponse.model_validate(label) for label in labels]


@router.post("", response_model=LabelResponse, status_code=status.HTTP_201_CREATED)
def create_label(
    body: LabelCreateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> LabelResponse:
    """ラベル作成（同じプロジェクト内で名前は大文字小文字を区別せず一意）"""
    ctx.require(perms.LABELS_MANAGE)
    label = ProjectService(ctx.db).create_label(ctx.project.id, body.name, body.color)
    response = LabelResponse.model_validate(label)
    publisher.project(
        ctx.project.id, "label.created", label=response.model_dump(mode="json", by_alias=True)
    )
    return response


@router.patch("/{label_id}", response_model=LabelResponse)
def update_label(
    label_id: str,
    body: LabelUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> LabelResponse:
    ctx.require(perms.LABELS_MANAGE)
    service = ProjectService(ctx.db)
    label = service.update_label(
        service.get_label(ctx.project.id, label_id), body.name, body.color
    )
    response = LabelResponse.model_validate(label)
    publisher.project(
        ctx.project.id, "label.updated", label=response.model_dump(mode="json", by_alias=True)
    )
    return response


@router.delete("/{label_id}", response_model=SuccessResponse)
def delete_label(
    label_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    ctx.require(perms.LABELS_MANAGE)
    service = ProjectService(ctx.db)
    service.delete_label(service.get_label(ctx.project.id, label_id))
    publisher.project(ctx.project.id, "label.deleted", labelId=label_id)
    return SuccessResponse()
