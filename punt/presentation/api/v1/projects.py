from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from punt.domain import permissions as perms
from punt.infrastructure.database import get_db
from punt.infrastructure.database.models import Project, User
from punt.infrastructure.events import PROJECTS_CHANNEL, project_channel
from punt.infrastructure.repositories.project_repository import ProjectService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_current_user,
    get_project_context,
    get_publisher,
)
from punt.presentation.api.sse import event_stream_response
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.projects import (
    MyPermissionsResponse,
    ProjectCreateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
    RoleSummary,
)

router = APIRouter()


def _project_response(service: ProjectService, project: Project) -> ProjectResponse:
    response = ProjectResponse.model_validate(project)
    response.ticket_count = service.ticket_counts([project.id]).get(project.id, 0)
    return response


@router.get("", response_model=list[ProjectResponse])
def list_projects(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[ProjectResponse]:
    """参加中のプロジェクト一覧（システム管理者は全プロジェクト）"""
    service = ProjectService(db)
    projects = service.list_for_user(user)
    counts = service.ticket_counts([p.id for p in projects])
    return [
        ProjectResponse.model_validate(p).model_copy(
            update={"ticket_count": counts.get(p.id, 0)}
        )
        for p in projects
    ]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    body: ProjectCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    publisher: EventPublisher = Depends(get_publisher),
) -> ProjectResponse:
    """
    プロジェクト作成

    既定の列・ロール・スプリント設定が作られ、作成者がOwnerになる。
    """
    service = ProjectService(db)
    project = service.create_project(
        user, body.name, body.key, color=body.color, description=body.description
    )
    response = _project_response(service, project)
    publisher.publish(
        PROJECTS_CHANNEL,
        "project.created",
        projectId=project.id,
        project=response.model_dump(mode="json", by_alias=True),
    )
    return response


@router.get("/events")
async def project_list_events(
    request: Request, user: User = Depends(get_current_user)
) -> StreamingResponse:
    """プロジェクト一覧の変更を受け取るSSEストリーム"""
    return event_stream_response(request, [PROJECTS_CHANNEL], user.id)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(ctx: ProjectContext = Depends(get_project_context)) -> ProjectResponse:
    return _project_response(ProjectService(ctx.db), ctx.project)


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    body: ProjectUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> ProjectResponse:
    ctx.require(perms.PROJECT_SETTINGS)
    service = ProjectService(ctx.db)
    project = service.update_project(ctx.project, body.model_dump(exclude_unset=True))
    response = _project_response(service, project)
    publisher.publish(
        PROJECTS_CHANNEL,
        "project.updated",
        projectId=project.id,
        project=response.model_dump(mode="json", by_alias=True),
    )
    return response


@router.delete("/{project_id}", response_model=SuccessResponse)
def delete_project(
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    """プロジェクトと配下のチケット・スプリント等をすべて削除する"""
    ctx.require(perms.PROJECT_DELETE)
    project_id = ctx.project.id
    ProjectService(ctx.db).delete_project(ctx.project)
    publisher.publish(PROJECTS_CHANNEL, "project.deleted", projectId=project_id)
    publisher.project(project_id, "project.deleted")
    return SuccessResponse()


@router.get("/{project_id}/events")
async def project_events(
    request: Request, ctx: ProjectContext = Depends(get_project_context)
) -> StreamingResponse:
    """プロジェクト内の変更（チケット・スプリント・メンバー等）のSSEストリーム"""
    return event_stream_response(
        request,
        [project_channel(ctx.project.id)],
        ctx.user.id,
        projectId=ctx.project.id,
    )


@router.get("/{project_id}/my-permissions", response_model=MyPermissionsResponse)
def my_permissions(
    ctx: ProjectContext = Depends(get_project_context),
) -> MyPermissionsResponse:
    membership = ctx.access.membership
    return MyPermissionsResponse(
        project_id=ctx.project.id,
        permissions=sorted(ctx.access.permissions),
        is_system_admin=ctx.access.is_system_admin,
        role=RoleSummary.model_validate(membership.role) if membership else None,
    )
