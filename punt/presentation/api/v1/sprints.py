from fastapi import APIRouter, Depends, Query, status

from punt.domain import permissions as perms
from punt.infrastructure.database.models import ProjectSprintSettings
from punt.infrastructure.repositories.sprint_repository import SprintService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.sprints import (
    BurndownPointResponse,
    BurndownResponse,
    BurndownSprint,
    SprintCompleteRequest,
    SprintCompleteResponse,
    SprintCreateRequest,
    SprintExtendRequest,
    SprintResponse,
    SprintSettingsResponse,
    SprintSettingsUpdateRequest,
    SprintStartRequest,
    SprintUpdateRequest,
)

router = APIRouter()


def _settings_response(
    service: SprintService, settings: ProjectSprintSettings
) -> SprintSettingsResponse:
    return SprintSettingsResponse(
        project_id=settings.project_id,
        default_sprint_duration=settings.default_sprint_duration,
        auto_carry_over_incomplete=settings.auto_carry_over_incomplete,
        done_column_ids=service.done_column_ids(settings),
    )


def _publish(publisher: EventPublisher, event_type: str, sprint: SprintResponse) -> None:
    publisher.project(
        sprint.project_id,
        event_type,
        sprint=sprint.model_dump(mode="json", by_alias=True),
    )


@router.get("", response_model=list[SprintResponse])
def list_sprints(
    ctx: ProjectContext = Depends(get_project_context),
) -> list[SprintResponse]:
    """進行中 → 計画中 → 完了の順"""
    sprints = SprintService(ctx.db).list_sprints(ctx.project.id)
    return [SprintResponse.model_validate(s) for s in sprints]


@router.post("", response_model=SprintResponse, status_code=status.HTTP_201_CREATED)
def create_sprint(
    body: SprintCreateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SprintResponse:
    ctx.require(perms.SPRINTS_MANAGE)
    sprint = SprintService(ctx.db).create_sprint(
        ctx.project.id,
        body.name,
        goal=body.goal,
        start_date=body.start_date,
        end_date=body.end_date,
        budget=body.budget,
    )
    response = SprintResponse.model_validate(sprint)
    _publish(publisher, "sprint.created", response)
    return response


@router.get("/settings", response_model=SprintSettingsResponse)
def get_sprint_settings(
    ctx: ProjectContext = Depends(get_project_context),
) -> SprintSettingsResponse:
    service = SprintService(ctx.db)
    return _settings_response(service, service.get_settings(ctx.project.id))


@router.patch("/settings", response_model=SprintSettingsResponse)
def update_sprint_settings(
    body: SprintSettingsUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
) -> SprintSettingsResponse:
    ctx.require(perms.SPRINTS_MANAGE, perms.PROJECT_SETTINGS)
    service = SprintService(ctx.db)
    settings = service.update_settings(ctx.project.id, body.model_dump(exclude_unset=True))
    return _settings_response(service, settings)


@router.get("/{sprint_id}", response_model=SprintResponse)
def get_sprint(
    sprint_id: str, ctx: ProjectContext = Depends(get_project_context)
) -> SprintResponse:
    return SprintResponse.model_validate(
        SprintService(ctx.db).get_sprint(ctx.project.id, sprint_id)
    )


@router.patch("/{sprint_id}", response_model=SprintResponse)
def update_sprint(
    sprint_id: str,
    body: SprintUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SprintResponse:
    ctx.require(perms.SPRINTS_MANAGE)
    service = SprintService(ctx.db)
    sprint = service.update_sprint(
        service.get_sprint(ctx.project.id, sprint_id),
        body.model_dump(exclude_unset=True),
    )
    response = SprintResponse.model_validate(sprint)
    _publish(publisher, "sprint.updated", response)
    return response


@router.delete("/{sprint_id}", response_model=SuccessResponse)
def delete_sprint(
    sprint_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    """計画中のスプリントのみ削除可能。所属チケットはバックログへ戻る"""
    ctx.require(perms.SPRINTS_MANAGE)
    service = SprintService(ctx.db)
    service.delete_sprint(service.get_sprint(ctx.project.id, sprint_id))
    publisher.project(ctx.project.id, "sprint.deleted", sprintId=sprint_id)
    return SuccessResponse()


@router.post("/{sprint_id}/start", response_model=SprintResponse)
def start_sprint(
    sprint_id: str,
    body: SprintStartRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SprintResponse:
    """
    スプリント開始

    プロジェクト内で進行中のスプリントは1つまで。
    """
    ctx.require(perms.SPRINTS_MANAGE)
    service = SprintService(ctx.db)
    sprint = service.start_sprint(
        service.get_sprint(ctx.project.id, sprint_id), body.start_date, body.end_date
    )
    response = SprintResponse.model_validate(sprint)
    _publish(publisher, "sprint.started", response)
    return response


@router.post("/{sprint_id}/complete", response_model=SprintCompleteResponse)
def complete_sprint(
    sprint_id: str,
    body: SprintCompleteRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SprintCompleteResponse:
    """
    スプリント完了

    完了列にあるチケットを完了として集計し、未完了チケットは action に従って
    次のスプリントかバックログへ移す。
    """
    ctx.require(perms.SPRINTS_MANAGE)
    service = SprintService(ctx.db)
    result = service.complete_sprint(
        ctx.user,
        service.get_sprint(ctx.project.id, sprint_id),
        body.action,
        target_sprint_id=body.target_sprint_id,
        create_next_sprint=body.create_next_sprint,
        done_column_ids=body.done_column_ids,
    )
    response = SprintCompleteResponse(
        sprint=SprintResponse.model_validate(result.sprint),
        completed_tickets=result.disposition.completed,
        moved_to_backlog=result.disposition.moved_to_backlog,
        carried_over=result.disposition.carried_over,
        next_sprint=(
            SprintResponse.model_validate(result.next_sprint)
            if result.next_sprint
            else None
        ),
    )
    _publish(publisher, "sprint.completed", response.sprint)
    if response.next_sprint is not None:
        _publish(publisher, "sprint.created", response.next_sprint)
    return response


@router.post("/{sprint_id}/extend", response_model=SprintResponse)
def extend_sprint(
    sprint_id: str,
    body: SprintExtendRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SprintResponse:
    ctx.require(perms.SPRINTS_MANAGE)
    service = SprintService(ctx.db)
    sprint = service.extend_sprint(
        service.get_sprint(ctx.project.id, sprint_id), body.days, body.new_end_date
    )
    response = SprintResponse.model_validate(sprint)
    _publish(publisher, "sprint.updated", response)
    return response


@router.post("/{sprint_id}/reopen", response_model=SprintResponse)
def reopen_sprint(
    sprint_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SprintResponse:
    """完了したスプリントを進行中に戻す。他に進行中のスプリントがあれば400"""
    ctx.require(perms.SPRINTS_MANAGE)
    service = SprintService(ctx.db)
    sprint = service.reopen_sprint(service.get_sprint(ctx.project.id, sprint_id))
    response = SprintResponse.model_validate(sprint)
    _publish(publisher, "sprint.reopened", response)
    return response


@router.get("/{sprint_id}/burndown", response_model=BurndownResponse)
def get_burndown(
    sprint_id: str,
    unit: str = Query(default="points"),
    ctx: ProjectContext = Depends(get_project_context),
) -> BurndownResponse:
    """
    バーンダウンチャート

    unit=tickets で件数、それ以外はストーリーポイントで集計する。
    開始日の無いスプリントは dataPoints が空。
    """
    service = SprintService(ctx.db)
    burndown = service.burndown(service.get_sprint(ctx.project.id, sprint_id), unit)
    return BurndownResponse(
        sprint=BurndownSprint.model_validate(burndown.sprint),
        unit=burndown.unit,
        data_points=[
            BurndownPointResponse.model_validate(point) for point in burndown.points
        ],
    )
