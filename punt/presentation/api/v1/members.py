from fastapi import APIRouter, Depends, status

from punt.domain.exceptions import BadRequestError
from punt.infrastructure.repositories.member_repository import MemberService
from punt.infrastructure.repositories.user_repository import UserService
from punt.presentation.api.deps import (
    EventPublisher,
    ProjectContext,
    get_project_context,
    get_publisher,
)
from punt.presentation.schemas.base import SuccessResponse
from punt.presentation.schemas.projects import (
    MemberAddRequest,
    MemberResponse,
    MemberUpdateRequest,
)

router = APIRouter()


@router.get("", response_model=list[MemberResponse])
def list_members(
    ctx: ProjectContext = Depends(get_project_context),
) -> list[MemberResponse]:
    members = MemberService(ctx.db).list_members(ctx.project.id)
    return [MemberResponse.from_member(m) for m in members]


@router.post("", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    body: MemberAddRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> MemberResponse:
    """
    メンバー追加

    ユーザーは userId か username で指定する。ロール未指定ならMember。
    """
    users = UserService(ctx.db)
    if body.user_id:
        user = users.get(body.user_id)
    elif body.username:
        user = users.get_by_username(body.username)
    else:
        raise BadRequestError("userId or username is required")
    if user is None:
        raise BadRequestError("User not found")

    member = MemberService(ctx.db).add_member(ctx.user, ctx.project.id, user, body.role_id)
    response = MemberResponse.from_member(member)
    publisher.project(
        ctx.project.id,
        "member.added",
        member=response.model_dump(mode="json", by_alias=True),
    )
    return response


@router.patch("/{member_id}", response_model=MemberResponse)
def update_member(
    member_id: str,
    body: MemberUpdateRequest,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> MemberResponse:
    """
    ロール変更・個別権限の設定

    個別権限（overrides）の変更には members.admin が必要。
    """
    service = MemberService(ctx.db)
    member = service.update_member(
        ctx.user,
        service.get_member(ctx.project.id, member_id),
        role_id=body.role_id,
        overrides=body.overrides,
        overrides_given="overrides" in body.model_fields_set,
    )
    response = MemberResponse.from_member(member)
    publisher.project(
        ctx.project.id,
        "member.updated",
        member=response.model_dump(mode="json", by_alias=True),
    )
    return response


@router.delete("/{member_id}", response_model=SuccessResponse)
def remove_member(
    member_id: str,
    ctx: ProjectContext = Depends(get_project_context),
    publisher: EventPublisher = Depends(get_publisher),
) -> SuccessResponse:
    """メンバー削除（自分自身を指定するとプロジェクトから抜ける）"""
    service = MemberService(ctx.db)
    member = service.get_member(ctx.project.id, member_id)
    user_id = member.user_id
    service.remove_member(ctx.user, member)
    publisher.project(
        ctx.project.id, "member.removed", memberId=member_id, memberUserId=user_id
    )
    return SuccessResponse()
