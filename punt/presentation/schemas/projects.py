"""プロジェクト・ボード列・ラベル・ロール・メンバーのスキーマ"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from punt.domain import permissions as perms
from punt.infrastructure.database.models import ProjectMember, Role

from .base import BaseSchema, TimestampSchema
from .users import UserSummary


class ProjectResponse(TimestampSchema):
    id: str
    name: str
    key: str
    description: Optional[str] = None
    color: str
    ticket_count: int = 0


class ProjectCreateRequest(BaseSchema):
    name: str = Field(min_length=1, max_length=255)
    key: str = Field(min_length=1)
    color: Optional[str] = None
    description: Optional[str] = None


class ProjectUpdateRequest(BaseSchema):
    name: Optional[str] = Field(default=None, max_length=255)
    key: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None


class ColumnResponse(BaseSchema):
    id: str
    project_id: str
    name: str
    order: int


class ColumnCreateRequest(BaseSchema):
    name: str = Field(min_length=1, max_length=64)
    order: Optional[int] = None


class ColumnUpdateRequest(BaseSchema):
    name: Optional[str] = Field(default=None, min_length=1, max_length=64)
    order: Optional[int] = None


class LabelResponse(BaseSchema):
    id: str
    project_id: str
    name: str
    color: str


class LabelCreateRequest(BaseSchema):
    name: str = Field(max_length=64)
    color: Optional[str] = None


class LabelUpdateRequest(BaseSchema):
    name: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = None


class RoleSummary(BaseSchema):
    id: str
    name: str
    color: str
    position: int


class RoleResponse(RoleSummary, TimestampSchema):
    """ロール（permissionsはJSON文字列から配列に展開）"""

    project_id: str
    description: Optional[str] = None
    permissions: list[str]
    is_default: bool
    member_count: int = 0

    @classmethod
    def from_role(cls, role: Role, member_count: int = 0) -> "RoleResponse":
        return cls(
            id=role.id,
            project_id=role.project_id,
            name=role.name,
            color=role.color,
            description=role.description,
            permissions=perms.parse_permissions(role.permissions),
            is_default=role.is_default,
            position=role.position,
            member_count=member_count,
            created_at=role.created_at,
            updated_at=role.updated_at,
        )


class RoleCreateRequest(BaseSchema):
    name: str
    color: str = "#6b7280"
    description: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)
    position: Optional[int] = None


class RoleReorderRequest(BaseSchema):
    role_ids: list[str] = Field(min_length=1)


class RoleUpdateRequest(BaseSchema):
    name: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None
    permissions: Optional[list[str]] = None
    position: Optional[int] = None


class MemberResponse(BaseSchema):
    id: str
    project_id: str
    user_id: str
    role_id: str
    user: UserSummary
    role: RoleSummary
    overrides: Optional[list[str]] = None
    created_at: datetime

    @classmethod
    def from_member(cls, member: ProjectMember) -> "MemberResponse":
        return cls(
            id=member.id,
            project_id=member.project_id,
            user_id=member.user_id,
            role_id=member.role_id,
            user=UserSummary.model_validate(member.user),
            role=RoleSummary.model_validate(member.role),
            overrides=(
                perms.parse_permissions(member.overrides)
                if member.overrides is not None
                else None
            ),
            created_at=member.created_at,
        )


class MemberAddRequest(BaseSchema):
    """userId と username のどちらかで指定する"""

    user_id: Optional[str] = None
    username: Optional[str] = None
    role_id: Optional[str] = None


class MemberUpdateRequest(BaseSchema):
    """overrides に null を明示すると個別権限を解除する"""

    role_id: Optional[str] = None
    overrides: Optional[list[str]] = None


class MyPermissionsResponse(BaseSchema):
    project_id: str
    permissions: list[str]
    is_system_admin: bool
    role: Optional[RoleSummary] = None
