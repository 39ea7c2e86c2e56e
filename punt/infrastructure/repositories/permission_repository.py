"""
プロジェクト権限の判定サービス

ロール権限とメンバー個別のオーバーライドから実効権限を求め、
各ルートでの認可チェックに使う。
"""

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import permissions as perms
from punt.domain.exceptions import ForbiddenError

from ..database.models import ProjectMember, Role, User

logger = get_logger(__name__)


@dataclass
class EffectivePermissions:
    """
    実効権限

    Attributes:
        permissions: 権限文字列の集合
        membership: メンバーシップ（システム管理者や非メンバーはNone）
        is_system_admin: システム管理者かどうか
    """

    permissions: set[str] = field(default_factory=set)
    membership: Optional[ProjectMember] = None
    is_system_admin: bool = False

    @property
    def is_member(self) -> bool:
        return self.is_system_admin or self.membership is not None


class PermissionService:
    """
    権限判定サービス
    """

    def __init__(self, db: DBSession):
        self.db = db

    def get_membership(self, user_id: str, project_id: str) -> Optional[ProjectMember]:
        return self.db.scalar(
            select(ProjectMember).where(
                ProjectMember.user_id == user_id,
                ProjectMember.project_id == project_id,
            )
        )

    def get_effective_permissions(
        self, user: User, project_id: str
    ) -> EffectivePermissions:
        """ユーザーのプロジェクト内での実効権限を求める"""
        if user.is_system_admin:
            return EffectivePermissions(
                permissions=set(perms.ALL_PERMISSIONS),
                membership=self.get_membership(user.id, project_id),
                is_system_admin=True,
            )

        membership = self.get_membership(user.id, project_id)
        if membership is None:
            return EffectivePermissions()

        return EffectivePermissions(
            permissions=perms.effective_permissions(
                membership.role.permissions, membership.overrides
            ),
            membership=membership,
        )

    def has_permission(self, user: User, project_id: str, permission: str) -> bool:
        return permission in self.get_effective_permissions(user, project_id).permissions

    def require_membership(self, user: User, project_id: str) -> EffectivePermissions:
        """
        プロジェクトメンバーであることを要求する

        Raises:
            ForbiddenError: メンバーでない場合
        """
        effective = self.get_effective_permissions(user, project_id)
        if not effective.is_member:
            raise ForbiddenError("You are not a member of this project")
        return effective

    def require_permission(
        self, user: User, project_id: str, *required: str
    ) -> EffectivePermissions:
        """
        いずれかの権限を持つことを要求する

        Raises:
            ForbiddenError: メンバーでない、または権限が無い場合
        """
        effective = self.require_membership(user, project_id)
        if not any(p in effective.permissions for p in required):
            logger.info(
                f"Permission denied: {user.username} lacks {', '.join(required)} "
                f"on project {project_id}"
            )
            raise ForbiddenError(f"Missing permission: {required[0]}")
        return effective

    def require_ticket_permission(
        self, user: User, project_id: str, owner_ids: tuple[Optional[str], ...]
    ) -> EffectivePermissions:
        """
        チケット編集権限を要求する

        tickets.manage_any、または自分が作成者/担当者のチケットに対する
        tickets.manage_own が必要。
        """
        effective = self.require_membership(user, project_id)
        if perms.TICKETS_MANAGE_ANY in effective.permissions:
            return effective
        if perms.TICKETS_MANAGE_OWN in effective.permissions and user.id in owner_ids:
            return effective
        raise ForbiddenError(f"Missing permission: {perms.TICKETS_MANAGE_ANY}")

    def _actor_position(self, user: User, project_id: str) -> Optional[int]:
        membership = self.get_membership(user.id, project_id)
        return membership.role.position if membership else None

    def can_manage_member(
        self, actor: User, project_id: str, target: ProjectMember
    ) -> bool:
        """
        メンバーを変更・削除できるか

        自分自身は対象外。members.manage を持ち、
        自分のロールが対象より上位である必要がある。
        """
        if actor.id == target.user_id:
            return False
        effective = self.get_effective_permissions(actor, project_id)
        if perms.MEMBERS_MANAGE not in effective.permissions:
            return False
        if effective.is_system_admin:
            return True
        return perms.outranks(
            self._actor_position(actor, project_id), target.role.position
        )

    def can_assign_role(self, actor: User, project_id: str, role: Role) -> bool:
        """指定ロールを他メンバーに付与できるか（自分より下位のロールのみ）"""
        effective = self.get_effective_permissions(actor, project_id)
        if perms.MEMBERS_MANAGE not in effective.permissions:
            return False
        if effective.is_system_admin:
            return True
        return perms.outranks(self._actor_position(actor, project_id), role.position)
