from fastapi import APIRouter, Depends, status

from punt.domain import permissions as perms
from punt.infrastructure.repositories.member_repository import MemberService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.projects import (
    RoleCreateRequest,
    RoleReorderRequest,
    RoleResponse,
    RoleUpdateRequest,
)

router = APIRouter()

ROLE_MANAGE_PERMISSIONS = (perms.MEMBERS_ADMIN, perms.PROJECT_SETTINGS)


@router.get("", response_model=list[RoleResponse])
def list_roles(ctx: ProjectContext = Depends(get_project_context)) -> list[RoleResponse]:
    service = MemberService(ctx.db)
    counts = service.member_counts(ctx.project.id)
    return [
        RoleResponse.from_role(role, counts.get(role.id, 0))
        for role in service.list_roles(ctx.project.id)
    ]


@router.post("", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> RoleResponse:
    ctx.require(*ROLE_MANAGE_PERMISSIONS)
    role = MemberService(ctx.db).create_role(
        ctx.project.id,
        body.name,
        body.color,
        body.permissions,
        description=body.description,
        position=body.position,
    )
    response = RoleResponse.from_role(role)
    publisher.project(
        ctx.project.id, "role.created", role=response.model_dump(mode="json", by_alias=True)
    )
    return response


@router.patch("/{role_id}", response_model=RoleResponse)
def update_role(
    role_id: str,
    body: RoleUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> RoleResponse:
    ctx.require(*ROLE_MANAGE_PERMISSIONS)
    service = MemberService(ctx.db)
    role = service.update_role(
        service.get_role(ctx.project.id, role_id), body.model_dump(exclude_unset=True)
    )
    response = RoleResponse.from_role(
        role, service.member_counts(ctx.project.id).get(role.id, 0)
    )
    publisher.project(
        ctx.project.id, "role.updated", role=response.model_dump(mode="json", by_alias=True)
    )
    return response


@router.delete("/{role_id}", response_model=SuccessResponse)
def delete_role(
    role_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    """既定ロールとメンバーが残っているロールは削除できない"""
    ctx.require(*ROLE_MANAGE_PERMISSIONS)
    service = MemberService(ctx.db)
    service.delete_role(service.get_role(ctx.project.id, role_id))
    publisher.project(ctx.project.id, "role.deleted", roleId=role_id)
    return SuccessResponse()


@router.post("/reorder", response_model=list[RoleResponse])
def reorder_roles(
    body: RoleReorderRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> list[RoleResponse]:
    """roleIds の並び順で position を振り直す（先頭が最上位）"""
    ctx.require(*ROLE_MANAGE_PERMISSIONS)
    service = MemberService(ctx.db)
    roles = service.reorder_roles(ctx.project.id, body.role_ids)
    counts = service.member_counts(ctx.project.id)
    publisher.project(ctx.project.id, "role.reordered", roleIds=[r.id for r in roles])
    return [RoleResponse.from_role(role, counts.get(role.id, 0)) for role in roles]
