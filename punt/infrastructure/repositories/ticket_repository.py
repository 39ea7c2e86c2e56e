"""
チケット管理サービス

- 一覧のフィルタリングとテキスト検索
- 作成・更新（変更履歴の記録）・削除
- 親チケットの循環参照チェック
- 別プロジェクトへの移動
- ウォッチャーの管理
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import constants
from punt.domain.exceptions import BadRequestError, NotFoundError
from punt.utils.query import LIKE_ESCAPE, MAX_SEARCH_LENGTH, contains_pattern

from ..database.models import (
    Attachment,
    BoardColumn,
    Comment,
    Label,
    Project,
    ProjectMember,
    Sprint,
    Ticket,
    TicketEdit,
    TicketLink,
    TicketSprintHistory,
    TicketWatcher,
    User,
    utcnow,
)
from ..uploads import delete_upload

logger = get_logger(__name__)

# 親チケットを辿る上限
MAX_PARENT_DEPTH = 50

BACKLOG = "backlog"

# 変更履歴を残すスカラー項目
TRACKED_FIELDS = (
    "title",
    "description",
    "type",
    "priority",
    "column_id",
    "assignee_id",
    "sprint_id",
    "parent_id",
    "story_points",
    "estimate",
    "start_date",
    "due_date",
    "environment",
    "affected_version",
    "fix_version",
)

UPDATABLE_FIELDS = TRACKED_FIELDS + ("order",)

# nullを受け付けない項目
REQUIRED_FIELDS = ("title", "type", "priority", "column_id", "order")


@dataclass
class TicketFilters:
    """チケット一覧の絞り込み条件"""

    type: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[str] = None
    sprint_id: Optional[str] = None
    column_id: Optional[str] = None
    label_id: Optional[str] = None
    q: Optional[str] = None


@dataclass
class TicketCounts:
    comments: int = 0
    subtasks: int = 0
    attachments: int = 0


@dataclass
class MoveResult:
    ticket: Ticket
    source_project_id: str
    target_project_id: str


def ticket_key(project: Project, ticket: Ticket) -> str:
    """KEY-123 形式の表示キー"""
    return f"{project.key}-{ticket.number}"


def _edit_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class TicketService:
    """
    チケット管理サービス
    """

    def __init__(self, db: DBSession):
        self.db = db

    # ------------------------------------------------------------------
    # 取得
    # ------------------------------------------------------------------

    def list_tickets(
        self, project: Project, filters: Optional[TicketFilters] = None
    ) -> list[Ticket]:
        filters = filters or TicketFilters()
        stmt = select(Ticket).where(Ticket.project_id == project.id)

        if filters.type:
            stmt = stmt.where(Ticket.type == filters.type)
        if filters.priority:
            stmt = stmt.where(Ticket.priority == filters.priority)
        if filters.assignee_id:
            stmt = stmt.where(Ticket.assignee_id == filters.assignee_id)
        if filters.sprint_id == BACKLOG:
            stmt = stmt.where(Ticket.sprint_id.is_(None))
        elif filters.sprint_id:
            stmt = stmt.where(Ticket.sprint_id == filters.sprint_id)
        if filters.column_id:
            stmt = stmt.where(Ticket.column_id == filters.column_id)
        if filters.label_id:
            stmt = stmt.where(Ticket.labels.any(Label.id == filters.label_id))
        if filters.q and filters.q.strip():
            query = filters.q.strip()[:MAX_SEARCH_LENGTH]
            stmt = stmt.where(self._search_condition(project, query))

        stmt = stmt.order_by(Ticket.column_id, Ticket.order, Ticket.number)
        return list(self.db.scalars(stmt).unique().all())

    def _search_condition(self, project: Project, query: str) -> Any:
        """タイトルの部分一致、またはKEY-番号/番号の完全一致"""
        conditions = [Ticket.title.ilike(contains_pattern(query), escape=LIKE_ESCAPE)]
        key_match = re.match(rf"^{re.escape(project.key)}-(\d+)$", query, re.IGNORECASE)
        if key_match:
            conditions.append(Ticket.number == int(key_match.group(1)))
        elif query.isdigit():
            conditions.append(Ticket.number == int(query))
        return or_(*conditions)

    def get_ticket(self, project_id: str, ticket_id: str) -> Ticket:
        ticket = self.db.scalar(
            select(Ticket).where(Ticket.id == ticket_id, Ticket.project_id == project_id)
        )
        if ticket is None:
            raise NotFoundError("Ticket not found")
        return ticket

    def watchers_for(self, ticket_ids: list[str]) -> dict[str, list[User]]:
        """チケットIDごとのウォッチャー一覧"""
        result: dict[str, list[User]] = {ticket_id: [] for ticket_id in ticket_ids}
        if not ticket_ids:
            return result
        rows = self.db.execute(
            select(TicketWatcher.ticket_id, User)
            .join(User, User.id == TicketWatcher.user_id)
            .where(TicketWatcher.ticket_id.in_(ticket_ids))
            .order_by(TicketWatcher.created_at)
        ).all()
        for ticket_id, user in rows:
            result[ticket_id].append(user)
        return result

    def counts_for(self, ticket_ids: list[str]) -> dict[str, TicketCounts]:
        """コメント・サブタスク・添付ファイルの件数"""
        result = {ticket_id: TicketCounts() for ticket_id in ticket_ids}
        if not ticket_ids:
            return result

        for ticket_id, count in self.db.execute(
            select(Comment.ticket_id, func.count())
            .where(Comment.ticket_id.in_(ticket_ids))
            .group_by(Comment.ticket_id)
        ).all():
            result[ticket_id].comments = count
        for ticket_id, count in self.db.execute(
            select(Ticket.parent_id, func.count())
            .where(Ticket.parent_id.in_(ticket_ids))
            .group_by(Ticket.parent_id)
        ).all():
            result[ticket_id].subtasks = count
        for ticket_id, count in self.db.execute(
            select(Attachment.ticket_id, func.count())
            .where(Attachment.ticket_id.in_(ticket_ids))
            .group_by(Attachment.ticket_id)
        ).all():
            result[ticket_id].attachments = count
        return result

    # ------------------------------------------------------------------
    # 検証
    # ------------------------------------------------------------------

    def _member_ids(self, project_id: str) -> set[str]:
        return set(
            self.db.scalars(
                select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
            ).all()
        )

    def _require_column(self, project_id: str, column_id: str) -> BoardColumn:
        column = self.db.scalar(
            select(BoardColumn).where(
                BoardColumn.id == column_id, BoardColumn.project_id == project_id
            )
        )
        if column is None:
            raise BadRequestError("Column not found or does not belong to project")
        return column

    def _require_sprint(self, project_id: str, sprint_id: str) -> Sprint:
        sprint = self.db.scalar(
            select(Sprint).where(Sprint.id == sprint_id, Sprint.project_id == project_id)
        )
        if sprint is None:
            raise BadRequestError("Sprint not found or does not belong to project")
        return sprint

    def _resolve_labels(self, project_id: str, label_ids: Iterable[str]) -> list[Label]:
        label_ids = list(dict.fromkeys(label_ids))
        if not label_ids:
            return []
        labels = list(
            self.db.scalars(
                select(Label).where(Label.project_id == project_id, Label.id.in_(label_ids))
            ).all()
        )
        if len(labels) != len(label_ids):
            raise BadRequestError("Labels not found or do not belong to project")
        return labels

    def _validate_parent(
        self, project_id: str, ticket_id: Optional[str], parent_id: str
    ) -> None:
        """
        親チケットを検証する

        自分自身や子孫を親にすることはできない。
        """
        if ticket_id is not None and parent_id == ticket_id:
            raise BadRequestError("Cannot set parent: ticket cannot be its own parent")

        parent = self.db.scalar(
            select(Ticket).where(Ticket.id == parent_id, Ticket.project_id == project_id)
        )
        if parent is None:
            raise BadRequestError("Parent ticket not found")

        current: Optional[str] = parent.parent_id
        depth = 0
        while current is not None:
            if current == ticket_id:
                raise BadRequestError(
                    "Cannot set parent: would create a circular reference"
                )
            depth += 1
            if depth >= MAX_PARENT_DEPTH:
                raise BadRequestError(
                    "Cannot set parent: parent chain exceeds maximum depth"
                )
            current = self.db.scalar(select(Ticket.parent_id).where(Ticket.id == current))

    def _next_number(self, project_id: str) -> int:
        current_max = self.db.scalar(
            select(func.max(Ticket.number)).where(Ticket.project_id == project_id)
        )
        return (current_max or 0) + 1

    def _next_order(self, column_id: str) -> int:
        current_max = self.db.scalar(
            select(func.max(Ticket.order)).where(Ticket.column_id == column_id)
        )
        return (-1 if current_max is None else current_max) + 1

    # ------------------------------------------------------------------
    # スプリント履歴
    # ------------------------------------------------------------------

    def _close_sprint_history(self, ticket_id: str, sprint_id: str, exit_status: str) -> None:
        self.db.execute(
            update(TicketSprintHistory)
            .where(
                TicketSprintHistory.ticket_id == ticket_id,
                TicketSprintHistory.sprint_id == sprint_id,
                TicketSprintHistory.exit_status.is_(None),
            )
            .values(exit_status=exit_status, removed_at=utcnow())
        )

    def _sync_sprint_history(
        self, ticket_id: str, old_sprint_id: Optional[str], new_sprint: Optional[Sprint]
    ) -> None:
        """スプリント変更時に履歴を更新する（進行中のスプリントのみ記録）"""
        if old_sprint_id:
            self._close_sprint_history(ticket_id, old_sprint_id, constants.EXIT_REMOVED)
        if new_sprint is not None and new_sprint.status == "active":
            self.db.add(
                TicketSprintHistory(
                    ticket_id=ticket_id,
                    sprint_id=new_sprint.id,
                    entry_type=constants.ENTRY_ADDED,
                )
            )

    # ------------------------------------------------------------------
    # 作成・更新・削除
    # ------------------------------------------------------------------

    def create_ticket(self, actor: User, project: Project, data: dict[str, Any]) -> Ticket:
        """
        チケットを作成する

        Args:
            actor: 作成者
            project: 対象プロジェクト
            data: snake_case の項目。label_ids, watcher_ids, reporter_id も受け付ける

        Raises:
            BadRequestError: 列・担当者・ウォッチャー・親チケットが不正な場合
        """
        column = self._require_column(project.id, data["column_id"])
        member_ids = self._member_ids(project.id)

        reporter_id = data.get("reporter_id") or actor.id
        if data.get("reporter_id") and reporter_id not in member_ids:
            raise BadRequestError("Reporter must be a project member")
        assignee_id = data.get("assignee_id")
        if assignee_id and assignee_id not in member_ids:
            raise BadRequestError("Assignee must be a project member")
        watcher_ids = list(dict.fromkeys(data.get("watcher_ids") or []))
        if any(w not in member_ids for w in watcher_ids):
            raise BadRequestError("All watchers must be project members")

        sprint: Optional[Sprint] = None
        if data.get("sprint_id"):
            sprint = self._require_sprint(project.id, data["sprint_id"])
        if data.get("parent_id"):
            self._validate_parent(project.id, None, data["parent_id"])
        labels = self._resolve_labels(project.id, data.get("label_ids") or [])
        order = data.get("order")
        if order is None:
            order = self._next_order(column.id)

        ticket = Ticket(
            project_id=project.id,
            number=self._next_number(project.id),
            title=data["title"],
            description=data.get("description"),
            type=data.get("type") or "task",
            priority=data.get("priority") or "medium",
            order=order,
            story_points=data.get("story_points"),
            estimate=data.get("estimate"),
            start_date=data.get("start_date"),
            due_date=data.get("due_date"),
            environment=data.get("environment"),
            affected_version=data.get("affected_version"),
            fix_version=data.get("fix_version"),
            column_id=column.id,
            assignee_id=assignee_id,
            creator_id=reporter_id,
            sprint_id=sprint.id if sprint else None,
            parent_id=data.get("parent_id"),
        )
        ticket.labels = labels
        self.db.add(ticket)
        self.db.flush()

        if actor.id not in watcher_ids:
            watcher_ids.append(actor.id)
        for user_id in watcher_ids:
            self.db.add(TicketWatcher(ticket_id=ticket.id, user_id=user_id))
        self._sync_sprint_history(ticket.id, None, sprint)

        self.db.commit()
        self.db.refresh(ticket)
        logger.info(f"Ticket created: {ticket_key(project, ticket)} by {actor.username}")
        return ticket

    def update_ticket(self, actor: User, ticket: Ticket, changes: dict[str, Any]) -> Ticket:
        """
        チケットを更新し、変更のあった項目を ticket_edits に記録する

        Args:
            changes: snake_case の項目。label_ids, watcher_ids も受け付ける
        """
        project_id = ticket.project_id
        member_ids: Optional[set[str]] = None

        if changes.get("column_id") and changes["column_id"] != ticket.column_id:
            self._require_column(project_id, changes["column_id"])
            if changes.get("order") is None:
                changes["order"] = self._next_order(changes["column_id"])
        if changes.get("assignee_id"):
            member_ids = self._member_ids(project_id)
            if changes["assignee_id"] not in member_ids:
                raise BadRequestError("Assignee must be a project member")
        new_sprint: Optional[Sprint] = None
        if changes.get("sprint_id"):
            new_sprint = self._require_sprint(project_id, changes["sprint_id"])
        if changes.get("parent_id"):
            self._validate_parent(project_id, ticket.id, changes["parent_id"])

        old_sprint_id = ticket.sprint_id
        for field_name in UPDATABLE_FIELDS:
            if field_name not in changes:
                continue
            new_value = changes[field_name]
            if new_value is None and field_name in REQUIRED_FIELDS:
                continue
            old_value = getattr(ticket, field_name)
            if old_value == new_value:
                continue
            setattr(ticket, field_name, new_value)
            if field_name in TRACKED_FIELDS:
                self.db.add(
                    TicketEdit(
                        ticket_id=ticket.id,
                        user_id=actor.id,
                        field=field_name,
                        old_value=_edit_value(old_value),
                        new_value=_edit_value(new_value),
                    )
                )

        if "sprint_id" in changes and changes["sprint_id"] != old_sprint_id:
            self._sync_sprint_history(ticket.id, old_sprint_id, new_sprint)

        if changes.get("label_ids") is not None:
            ticket.labels = self._resolve_labels(project_id, changes["label_ids"])

        if changes.get("watcher_ids") is not None:
            watcher_ids = list(dict.fromkeys(changes["watcher_ids"]))
            if member_ids is None:
                member_ids = self._member_ids(project_id)
            if any(w not in member_ids for w in watcher_ids):
                raise BadRequestError("All watchers must be project members")
            self.db.execute(delete(TicketWatcher).where(TicketWatcher.ticket_id == ticket.id))
            for user_id in watcher_ids:
                self.db.add(TicketWatcher(ticket_id=ticket.id, user_id=user_id))

        self.db.commit()
        self.db.refresh(ticket)
        return ticket

    def delete_ticket(self, ticket: Ticket) -> None:
        """チケットと添付ファイルを削除する"""
        urls = self.db.scalars(
            select(Attachment.url).where(Attachment.ticket_id == ticket.id)
        ).all()
        self.db.delete(ticket)
        self.db.commit()
        for url in urls:
            delete_upload(url)

    def list_edits(self, ticket_id: str) -> list[TicketEdit]:
        return list(
            self.db.scalars(
                select(TicketEdit)
                .where(TicketEdit.ticket_id == ticket_id)
                .order_by(TicketEdit.created_at.desc())
            ).all()
        )

    # ------------------------------------------------------------------
    # プロジェクト間の移動
    # ------------------------------------------------------------------

    def move_to_project(
        self, actor: User, ticket: Ticket, target_project: Project
    ) -> MoveResult:
        """
        チケットを別プロジェクトへ移動する

        移動先の先頭の列に新しい番号で追加される。リンク・スプリント・親子関係・
        ラベルは解除し、担当者とウォッチャーは移動先のメンバーのみ残す。

        Raises:
            BadRequestError: 同一プロジェクト、または移動先に列が無い場合
        """
        source_project_id = ticket.project_id
        if target_project.id == source_project_id:
            raise BadRequestError("Cannot move ticket to the same project")

        first_column = self.db.scalar(
            select(BoardColumn)
            .where(BoardColumn.project_id == target_project.id)
            .order_by(BoardColumn.order)
            .limit(1)
        )
        if first_column is None:
            raise BadRequestError("Target project has no columns")

        target_members = self._member_ids(target_project.id)

        self.db.execute(
            delete(TicketLink).where(
                or_(
                    TicketLink.from_ticket_id == ticket.id,
                    TicketLink.to_ticket_id == ticket.id,
                )
            )
        )
        self.db.execute(
            update(Ticket).where(Ticket.parent_id == ticket.id).values(parent_id=None)
        )
        if ticket.sprint_id:
            self._close_sprint_history(ticket.id, ticket.sprint_id, constants.EXIT_REMOVED)
        self.db.execute(
            delete(TicketWatcher).where(
                TicketWatcher.ticket_id == ticket.id,
                TicketWatcher.user_id.not_in(target_members),
            )
        )

        ticket.project_id = target_project.id
        ticket.number = self._next_number(target_project.id)
        ticket.column_id = first_column.id
        ticket.order = self._next_order(first_column.id)
        ticket.sprint_id = None
        ticket.parent_id = None
        ticket.is_carried_over = False
        ticket.carried_from_sprint_id = None
        ticket.carried_over_count = 0
        ticket.labels = []
        if ticket.assignee_id and ticket.assignee_id not in target_members:
            ticket.assignee_id = None

        self.db.add(
            TicketEdit(
                ticket_id=ticket.id,
                user_id=actor.id,
                field="project_id",
                old_value=source_project_id,
                new_value=target_project.id,
            )
        )
        self.db.commit()
        self.db.refresh(ticket)

        logger.info(
            f"Ticket moved to {ticket_key(target_project, ticket)} by {actor.username}"
        )
        return MoveResult(
            ticket=ticket,
            source_project_id=source_project_id,
            target_project_id=target_project.id,
        )

    # ------------------------------------------------------------------
    # ウォッチャー
    # ------------------------------------------------------------------

    def is_watching(self, ticket_id: str, user_id: str) -> bool:
        return (
            self.db.scalar(
                select(TicketWatcher).where(
                    TicketWatcher.ticket_id == ticket_id, TicketWatcher.user_id == user_id
                )
            )
            is not None
        )

    def watch(self, ticket: Ticket, user: User) -> None:
        if not self.is_watching(ticket.id, user.id):
            self.db.add(TicketWatcher(ticket_id=ticket.id, user_id=user.id))
            self.db.commit()

    def unwatch(self, ticket: Ticket, user: User) -> None:
        self.db.execute(
            delete(TicketWatcher).where(
                TicketWatcher.ticket_id == ticket.id, TicketWatcher.user_id == user.id
            )
        )
        self.db.commit()
