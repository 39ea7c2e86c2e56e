"""
プロジェクトのロールとメンバー管理

ロールの順位（position）が小さいほど上位。
自分と同等以上のロールを持つメンバーは操作できない。
"""

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import permissions as perms
from punt.domain.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)

from ..database.models import ProjectMember, Role, User
from .permission_repository import PermissionService
from .project_repository import validate_color

logger = get_logger(__name__)

ROLE_NAME_MAX_LENGTH = 50


def _validate_permission_list(values: list[str]) -> list[str]:
    invalid = [p for p in values if not perms.is_valid_permission(p)]
    if invalid:
        raise BadRequestError(
            "Invalid permissions provided", details={"invalid": invalid}
        )
    return values


class MemberService:
    """
    ロール・メンバー管理サービス
    """

    def __init__(self, db: DBSession):
        self.db = db
        self.permissions = PermissionService(db)

    # ------------------------------------------------------------------
    # ロール
    # ------------------------------------------------------------------

    def list_roles(self, project_id: str) -> list[Role]:
        return list(
            self.db.scalars(
                select(Role).where(Role.project_id == project_id).order_by(Role.position)
            ).all()
        )

    def get_role(self, project_id: str, role_id: str) -> Role:
        role = self.db.scalar(
            select(Role).where(Role.id == role_id, Role.project_id == project_id)
        )
        if role is None:
            raise NotFoundError("Role not found")
        return role

    def member_counts(self, project_id: str) -> dict[str, int]:
        rows = self.db.execute(
            select(ProjectMember.role_id, func.count())
            .where(ProjectMember.project_id == project_id)
            .group_by(ProjectMember.role_id)
        ).all()
        return {role_id: count for role_id, count in rows}

    def _ensure_role_name_available(
        self, project_id: str, name: str, exclude_id: Optional[str] = None
    ) -> None:
        existing = self.db.scalar(
            select(Role).where(
                Role.project_id == project_id, func.lower(Role.name) == name.lower()
            )
        )
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("A role with this name already exists")

    def _validate_role_name(self, name: str) -> str:
        name = name.strip()
        if not name:
            raise BadRequestError("Name is required")
        if len(name) > ROLE_NAME_MAX_LENGTH:
            raise BadRequestError("Name too long")
        return name

    def create_role(
        self,
        project_id: str,
        name: str,
        color: str,
        permission_list: list[str],
        description: Optional[str] = None,
        position: Optional[int] = None,
    ) -> Role:
        name = self._validate_role_name(name)
        self._ensure_role_name_available(project_id, name)
        _validate_permission_list(permission_list)

        if position is None:
            current_max = self.db.scalar(
                select(func.max(Role.position)).where(Role.project_id == project_id)
            )
            position = 0 if current_max is None else current_max + 1

        role = Role(
            project_id=project_id,
            name=name,
            color=validate_color(color),
            description=description,
            permissions=perms.serialize_permissions(permission_list),
            is_default=False,
            position=position,
        )
        self.db.add(role)
        self.db.commit()
        self.db.refresh(role)
        return role

    def update_role(self, role: Role, changes: dict[str, Any]) -> Role:
        if changes.get("name") is not None:
            name = self._validate_role_name(changes["name"])
            self._ensure_role_name_available(role.project_id, name, exclude_id=role.id)
            role.name = name
        if changes.get("color") is not None:
            role.color = validate_color(changes["color"])
        if "description" in changes:
            role.description = changes["description"]
        if changes.get("permissions") is not None:
            role.permissions = perms.serialize_permissions(
                _validate_permission_list(changes["permissions"])
            )
        if changes.get("position") is not None:
            role.position = changes["position"]
        self.db.commit()
        self.db.refresh(role)
        return role

    def reorder_roles(self, project_id: str, role_ids: list[str]) -> list[Role]:
        """
        指定順に position を 0 から振り直す

        指定しなかったロールの position は変えない。

        Raises:
            BadRequestError: 空、重複、または他プロジェクトのロールを含む場合
        """
        if not role_ids:
            raise BadRequestError("At least one role ID is required")
        roles = {
            role.id: role
            for role in self.db.scalars(
                select(Role).where(Role.project_id == project_id, Role.id.in_(role_ids))
            ).all()
        }
        if len(roles) != len(role_ids):
            raise BadRequestError(
                "Some role IDs are invalid or do not belong to this project"
            )
        for position, role_id in enumerate(role_ids):
            roles[role_id].position = position
        self.db.commit()
        logger.info(f"Roles reordered in project {project_id}")
        return self.list_roles(project_id)

    def delete_role(self, role: Role) -> None:
        if role.is_default:
            raise BadRequestError("Cannot delete default roles")
        if self.member_counts(role.project_id).get(role.id, 0) > 0:
            raise BadRequestError(
                "Cannot delete role with members. Reassign members first."
            )
        self.db.delete(role)
        self.db.commit()

    # ------------------------------------------------------------------
    # メンバー
    # ------------------------------------------------------------------

    def list_members(self, project_id: str) -> list[ProjectMember]:
        return list(
            self.db.scalars(
                select(ProjectMember)
                .join(Role, Role.id == ProjectMember.role_id)
                .where(ProjectMember.project_id == project_id)
                .order_by(Role.position, ProjectMember.created_at)
            ).all()
        )

    def get_member(self, project_id: str, member_id: str) -> ProjectMember:
        member = self.db.scalar(
            select(ProjectMember).where(
                ProjectMember.id == member_id, ProjectMember.project_id == project_id
            )
        )
        if member is None:
            raise NotFoundError("Member not found")
        return member

    def _owner_count(self, project_id: str) -> int:
        return (
            self.db.scalar(
                select(func.count())
                .select_from(ProjectMember)
                .join(Role, Role.id == ProjectMember.role_id)
                .where(
                    ProjectMember.project_id == project_id,
                    Role.name == perms.OWNER_ROLE_NAME,
                )
            )
            or 0
        )

    def add_member(
        self, actor: User, project_id: str, user: User, role_id: Optional[str] = None
    ) -> ProjectMember:
        """
        メンバーを追加する

        ロール未指定の場合はMemberロール。自分より下位のロールのみ付与できる。
        """
        if not user.is_active:
            raise BadRequestError("Cannot add a disabled user")
        if self.permissions.get_membership(user.id, project_id) is not None:
            raise ConflictError("User is already a member of this project")

        if role_id:
            role = self.get_role(project_id, role_id)
        else:
            role = self.db.scalar(
                select(Role).where(
                    Role.project_id == project_id, Role.name == perms.MEMBER_ROLE_NAME
                )
            )
            if role is None:
                raise BadRequestError("Invalid role for this project")

        effective = self.permissions.require_permission(
            actor, project_id, perms.MEMBERS_INVITE, perms.MEMBERS_MANAGE
        )
        if not effective.is_system_admin:
            actor_position = (
                effective.membership.role.position if effective.membership else None
            )
            if not perms.outranks(actor_position, role.position):
                raise ForbiddenError(
                    "Cannot assign roles equal to or higher than your own"
                )

        member = ProjectMember(project_id=project_id, user_id=user.id, role_id=role.id)
        self.db.add(member)
        self.db.commit()
        self.db.refresh(member)
        logger.info(f"Member added: {user.username} as {role.name}")
        return member

    def update_member(
        self,
        actor: User,
        member: ProjectMember,
        role_id: Optional[str] = None,
        overrides: Optional[list[str]] = None,
        overrides_given: bool = False,
    ) -> ProjectMember:
        """
        メンバーのロールまたは個別権限を変更する

        Args:
            actor: 操作するユーザー
            member: 対象メンバー
            role_id: 新しいロールID
            overrides: 個別権限（Noneで解除）
            overrides_given: overridesがリクエストに含まれていたか
        """
        project_id = member.project_id

        if role_id is not None and role_id != member.role_id:
            new_role = self.db.scalar(
                select(Role).where(Role.id == role_id, Role.project_id == project_id)
            )
            if new_role is None:
                raise BadRequestError("Invalid role for this project")

            if member.user_id == actor.id:
                # 自分自身は降格のみ（システム管理者を除く）
                if not actor.is_system_admin and new_role.position <= member.role.position:
                    raise BadRequestError(
                        "Cannot promote yourself to a higher or equal rank"
                    )
            else:
                self.permissions.require_permission(actor, project_id, perms.MEMBERS_MANAGE)
                if not self.permissions.can_manage_member(actor, project_id, member):
                    raise ForbiddenError("Cannot modify members with equal or higher rank")
                if not self.permissions.can_assign_role(actor, project_id, new_role):
                    raise ForbiddenError(
                        "Cannot assign roles equal to or higher than your own"
                    )

            if member.role.name == perms.OWNER_ROLE_NAME and self._owner_count(project_id) <= 1:
                raise BadRequestError(
                    "Cannot remove the last Owner. Transfer ownership first."
                )
            member.role_id = new_role.id

        if overrides_given:
            self.permissions.require_permission(actor, project_id, perms.MEMBERS_ADMIN)
            if overrides is None:
                member.overrides = None
            else:
                member.overrides = perms.serialize_permissions(
                    _validate_permission_list(overrides)
                )

        self.db.commit()
        self.db.refresh(member)
        return member

    def remove_member(self, actor: User, member: ProjectMember) -> None:
        """
        メンバーを削除する（自分自身の場合はプロジェクトからの脱退）
        """
        project_id = member.project_id
        if member.user_id == actor.id:
            if member.role.name == perms.OWNER_ROLE_NAME and self._owner_count(project_id) <= 1:
                raise BadRequestError(
                    "Cannot leave as the last Owner. Transfer ownership first."
                )
        else:
            self.permissions.require_permission(actor, project_id, perms.MEMBERS_MANAGE)
            if not self.permissions.can_manage_member(actor, project_id, member):
                raise ForbiddenError("Cannot remove members with equal or higher rank")

        self.db.delete(member)
        self.db.commit()
