"""
プロジェクト管理サービス

プロジェクト本体と、ボード列・ラベルを扱う。
ロールとメンバーは member_repository を参照。
"""

import re
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import constants
from punt.domain import permissions as perms
from punt.domain.exceptions import BadRequestError, ConflictError, NotFoundError

from ..database.models import (
    Attachment,
    BoardColumn,
    Label,
    Project,
    ProjectMember,
    ProjectSprintSettings,
    Role,
    Ticket,
    User,
)
from ..uploads import delete_upload
from .system_settings_repository import SystemSettingsService

logger = get_logger(__name__)

PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9]*$")
COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}$")


def normalize_project_key(key: str) -> str:
    """
    プロジェクトキーを大文字に揃えて検証する

    Raises:
        BadRequestError: 英字で始まる10文字以内の英数字でない場合
    """
    normalized = key.strip().upper()
    if not normalized:
        raise BadRequestError("Key is required")
    if len(normalized) > constants.PROJECT_KEY_MAX_LENGTH:
        raise BadRequestError(
            f"Key must be at most {constants.PROJECT_KEY_MAX_LENGTH} characters"
        )
    if not PROJECT_KEY_PATTERN.match(normalized):
        raise BadRequestError(
            "Key must start with a letter and contain only letters and numbers"
        )
    return normalized


def validate_color(color: str) -> str:
    if not COLOR_PATTERN.match(color):
        raise BadRequestError("Invalid color format")
    return color


class ProjectService:
    """
    プロジェクト管理サービス
    """

    def __init__(self, db: DBSession):
        self.db = db

    # ------------------------------------------------------------------
    # プロジェクト
    # ------------------------------------------------------------------

    def find(self, id_or_key: str) -> Optional[Project]:
        """IDまたはキー（大文字小文字を区別しない）で取得"""
        return self.db.scalar(
            select(Project).where(
                or_(Project.id == id_or_key, Project.key == id_or_key.upper())
            )
        )

    def resolve(self, id_or_key: str) -> Project:
        project = self.find(id_or_key)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def list_for_user(self, user: User) -> list[Project]:
        """参加中のプロジェクト一覧（システム管理者は全件）"""
        stmt = select(Project).order_by(Project.name)
        if not user.is_system_admin:
            stmt = stmt.join(ProjectMember, ProjectMember.project_id == Project.id).where(
                ProjectMember.user_id == user.id
            )
        return list(self.db.scalars(stmt).all())

    def ticket_counts(self, project_ids: list[str]) -> dict[str, int]:
        if not project_ids:
            return {}
        rows = self.db.execute(
            select(Ticket.project_id, func.count())
            .where(Ticket.project_id.in_(project_ids))
            .group_by(Ticket.project_id)
        ).all()
        return {project_id: count for project_id, count in rows}

    def _ensure_key_available(self, key: str, exclude_id: Optional[str] = None) -> None:
        existing = self.db.scalar(select(Project).where(Project.key == key))
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("Project key already exists")

    def create_project(
        self,
        creator: User,
        name: str,
        key: str,
        color: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        """
        プロジェクトを作成する

        既定の列・ロール・スプリント設定を作り、作成者をOwnerとして登録する。

        Raises:
            BadRequestError: キーや色の形式が不正な場合
            ConflictError: キーが重複している場合
        """
        key = normalize_project_key(key)
        if not name.strip():
            raise BadRequestError("Name is required")
        self._ensure_key_available(key)

        project = Project(
            name=name.strip(),
            key=key,
            description=description,
            color=validate_color(color) if color else constants.DEFAULT_PROJECT_COLOR,
        )
        self.db.add(project)
        self.db.flush()

        for order, column_name in enumerate(constants.DEFAULT_COLUMNS):
            self.db.add(BoardColumn(project_id=project.id, name=column_name, order=order))

        role_permissions = SystemSettingsService(self.db).default_role_permissions()
        owner_role: Optional[Role] = None
        for preset in perms.DEFAULT_ROLE_PRESETS:
            role = Role(
                project_id=project.id,
                name=preset["name"],
                color=preset["color"],
                description=preset["description"],
                permissions=perms.serialize_permissions(
                    role_permissions.get(preset["name"], preset["permissions"])
                ),
                is_default=True,
                position=preset["position"],
            )
            self.db.add(role)
            if preset["name"] == perms.OWNER_ROLE_NAME:
                owner_role = role
        self.db.flush()

        assert owner_role is not None
        self.db.add(
            ProjectMember(project_id=project.id, user_id=creator.id, role_id=owner_role.id)
        )
        self.db.add(
            ProjectSprintSettings(
                project_id=project.id,
                default_sprint_duration=constants.DEFAULT_SPRINT_DURATION_DAYS,
            )
        )
        self.db.commit()
        self.db.refresh(project)

        logger.info(f"Project created: {project.key} by {creator.username}")
        return project

    def update_project(self, project: Project, changes: dict[str, Any]) -> Project:
        if "key" in changes and changes["key"] is not None:
            key = normalize_project_key(changes["key"])
            self._ensure_key_available(key, exclude_id=project.id)
            project.key = key
        if changes.get("name") is not None:
            if not changes["name"].strip():
                raise BadRequestError("Name is required")
            project.name = changes["name"].strip()
        if changes.get("color") is not None:
            project.color = validate_color(changes["color"])
        if "description" in changes:
            project.description = changes["description"]
        self.db.commit()
        self.db.refresh(project)
        return project

    def delete_project(self, project: Project) -> None:
        """プロジェクトと配下のデータ・添付ファイルを削除する"""
        urls = self.db.scalars(
            select(Attachment.url)
            .join(Ticket, Ticket.id == Attachment.ticket_id)
            .where(Ticket.project_id == project.id)
        ).all()

        self.db.delete(project)
        self.db.commit()

        for url in urls:
            delete_upload(url)
        logger.info(f"Project deleted: {project.key}")

    # ------------------------------------------------------------------
    # ボード列
    # ------------------------------------------------------------------

    def list_columns(self, project_id: str) -> list[BoardColumn]:
        return list(
            self.db.scalars(
                select(BoardColumn)
                .where(BoardColumn.project_id == project_id)
                .order_by(BoardColumn.order)
            ).all()
        )

    def get_column(self, project_id: str, column_id: str) -> BoardColumn:
        column = self.db.scalar(
            select(BoardColumn).where(
                BoardColumn.id == column_id, BoardColumn.project_id == project_id
            )
        )
        if column is None:
            raise NotFoundError("Column not found")
        return column

    def create_column(
        self, project_id: str, name: str, order: Optional[int] = None
    ) -> BoardColumn:
        if order is None:
            current_max = self.db.scalar(
                select(func.max(BoardColumn.order)).where(
                    BoardColumn.project_id == project_id
                )
            )
            order = -1 if current_max is None else current_max
            order += 1
        column = BoardColumn(project_id=project_id, name=name, order=order)
        self.db.add(column)
        self.db.commit()
        self.db.refresh(column)
        return column

    def update_column(
        self, column: BoardColumn, name: Optional[str] = None, order: Optional[int] = None
    ) -> BoardColumn:
        if name is not None:
            column.name = name
        if order is not None:
            column.order = order
        self.db.commit()
        self.db.refresh(column)
        return column

    def delete_column(
        self, column: BoardColumn, move_tickets_to: Optional[str] = None
    ) -> None:
        """
        列を削除する

        チケットが残っている場合は move_tickets_to の列へ移動させる。
        """
        ticket_count = (
            self.db.scalar(
                select(func.count()).select_from(Ticket).where(Ticket.column_id == column.id)
            )
            or 0
        )
        if ticket_count > 0:
            if not move_tickets_to:
                raise BadRequestError(
                    f"Column has {ticket_count} ticket(s). Provide moveTicketsTo parameter."
                )
            if move_tickets_to == column.id:
                raise BadRequestError("Cannot move tickets to the same column")
            target = self.db.scalar(
                select(BoardColumn).where(
                    BoardColumn.id == move_tickets_to,
                    BoardColumn.project_id == column.project_id,
                )
            )
            if target is None:
                raise BadRequestError("Target column not found")

        column_count = (
            self.db.scalar(
                select(func.count())
                .select_from(BoardColumn)
                .where(BoardColumn.project_id == column.project_id)
            )
            or 0
        )
        if column_count <= 1:
            raise BadRequestError("Cannot delete the last column in a project")

        if ticket_count > 0:
            self.db.execute(
                update(Ticket)
                .where(Ticket.column_id == column.id)
                .values(column_id=move_tickets_to)
            )
        self.db.delete(column)
        self.db.commit()

    # ------------------------------------------------------------------
    # ラベル
    # ------------------------------------------------------------------

    def list_labels(self, project_id: str) -> list[Label]:
        return list(
            self.db.scalars(
                select(Label).where(Label.project_id == project_id).order_by(Label.name)
            ).all()
        )

    def get_label(self, project_id: str, label_id: str) -> Label:
        label = self.db.scalar(
            select(Label).where(Label.id == label_id, Label.project_id == project_id)
        )
        if label is None:
            raise NotFoundError("Label not found")
        return label

    def _ensure_label_name_available(
        self, project_id: str, name: str, exclude_id: Optional[str] = None
    ) -> None:
        existing = self.db.scalar(
            select(Label).where(
                Label.project_id == project_id,
                func.lower(Label.name) == name.lower(),
            )
        )
        if existing is not None and existing.id != exclude_id:
            raise ConflictError("A label with this name already exists")

    def create_label(
        self, project_id: str, name: str, color: Optional[str] = None
    ) -> Label:
        name = name.strip()
        if not name:
            raise BadRequestError("Name is required")
        self._ensure_label_name_available(project_id, name)
        label = Label(
            project_id=project_id,
            name=name,
            color=validate_color(color) if color else constants.DEFAULT_LABEL_COLOR,
        )
        self.db.add(label)
        self.db.commit()
        self.db.refresh(label)
        return label

    def update_label(
        self, label: Label, name: Optional[str] = None, color: Optional[str] = None
    ) -> Label:
        if name is not None:
            name = name.strip()
            if not name:
                raise BadRequestError("Name is required")
            self._ensure_label_name_available(label.project_id, name, exclude_id=label.id)
            label.name = name
        if color is not None:
            label.color = validate_color(color)
        self.db.commit()
        self.db.refresh(label)
        return label

    def delete_label(self, label: Label) -> None:
        self.db.delete(label)
        self.db.commit()
