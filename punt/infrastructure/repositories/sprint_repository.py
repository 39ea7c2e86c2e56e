"""
スプリント管理サービス

スプリントは planning → active → completed の順に遷移する。
プロジェクト内で active なスプリントは同時に1つまで。
"""

import json
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session as DBSession

from punt.core.logging import get_logger
from punt.domain import constants
from punt.domain.exceptions import BadRequestError, NotFoundError

from ..database.models import (
    BoardColumn,
    ProjectSprintSettings,
    Sprint,
    Ticket,
    TicketSprintHistory,
    User,
    utcnow,
)

logger = get_logger(__name__)

# 完了扱いとする列名（大文字小文字を区別しない）
COMPLETED_COLUMN_NAMES = ("done", "complete", "completed", "closed", "resolved", "finished")

COMPLETE_ACTIONS = ("close_to_next", "close_to_backlog", "close_keep")

SPRINT_NAME_MAX_LENGTH = 100
SPRINT_GOAL_MAX_LENGTH = 500
MAX_EXTEND_DAYS = 90

STATUS_ORDER = {"active": 0, "planning": 1, "completed": 2}

BURNDOWN_UNITS = ("points", "tickets")


def is_completed_column(name: str) -> bool:
    return name.strip().lower() in COMPLETED_COLUMN_NAMES


def next_sprint_name(current: str) -> str:
    """
    次のスプリント名を求める

    末尾の数字を1増やす（"Sprint 1" → "Sprint 2"）。
    数字が無ければ " 2" を付ける。
    """
    match = re.match(r"^(.*?)(\d+)$", current)
    if match:
        return f"{match.group(1)}{int(match.group(2)) + 1}"
    return f"{current} 2"


@dataclass
class TicketDisposition:
    completed: list[str] = field(default_factory=list)
    moved_to_backlog: list[str] = field(default_factory=list)
    carried_over: list[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    sprint: Sprint
    disposition: TicketDisposition
    next_sprint: Optional[Sprint] = None


@dataclass
class BurndownEntry:
    """バーンダウン集計用のチケット1件分"""

    story_points: int
    added_at: datetime
    removed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class BurndownPoint:
    date: date
    day: int
    ideal: float
    remaining: int
    scope: int
    completed: int


@dataclass
class Burndown:
    sprint: Sprint
    unit: str
    points: list[BurndownPoint]


def _utc_day(value: datetime) -> date:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date()


def burndown_points(
    entries: list[BurndownEntry],
    start_day: date,
    last_day: date,
    planned_end: date,
    unit: str = "points",
) -> list[BurndownPoint]:
    """
    日ごとのスコープ・完了量と理想線を求める

    理想線は初日のスコープ（0なら期間中の最大スコープ）から
    予定終了日に0となる直線。
    """
    total_days = max(1, (planned_end - start_day).days + 1)

    def weight(entry: BurndownEntry) -> int:
        return 1 if unit == "tickets" else entry.story_points

    raw: list[tuple[date, int, int]] = []
    current = start_day
    while current <= last_day:
        scope = 0
        completed = 0
        for entry in entries:
            if _utc_day(entry.added_at) > current:
                continue
            if entry.removed_at is not None and _utc_day(entry.removed_at) <= current:
                continue
            scope += weight(entry)
            if entry.completed_at is not None and _utc_day(entry.completed_at) <= current:
                completed += weight(entry)
        raw.append((current, scope, completed))
        current += timedelta(days=1)

    first_scope = raw[0][1] if raw else 0
    commitment = first_scope or max((scope for _, scope, _ in raw), default=0)

    return [
        BurndownPoint(
            date=day,
            day=index + 1,
            ideal=round(max(0.0, commitment - commitment * index / total_days), 1),
            remaining=scope - completed,
            scope=scope,
            completed=completed,
        )
        for index, (day, scope, completed) in enumerate(raw)
    ]


def _sort_key(sprint: Sprint) -> tuple[int, int, float, str]:
    # 同じ状態の中では開始日の新しい順、開始日なしは後ろ
    start = sprint.start_date.timestamp() if sprint.start_date else 0.0
    return (
        STATUS_ORDER.get(sprint.status, 3),
        0 if sprint.start_date else 1,
        -start,
        sprint.name,
    )


class SprintService:
    """
    スプリント管理サービス
    """

    def __init__(self, db: DBSession):
        self.db = db

    def list_sprints(self, project_id: str) -> list[Sprint]:
        sprints = self.db.scalars(
            select(Sprint).where(Sprint.project_id == project_id)
        ).all()
        return sorted(sprints, key=_sort_key)

    def get_sprint(self, project_id: str, sprint_id: str) -> Sprint:
        sprint = self.db.scalar(
            select(Sprint).where(Sprint.id == sprint_id, Sprint.project_id == project_id)
        )
        if sprint is None:
            raise NotFoundError("Sprint not found")
        return sprint

    def sprint_tickets(self, sprint_id: str) -> list[Ticket]:
        return list(
            self.db.scalars(select(Ticket).where(Ticket.sprint_id == sprint_id)).all()
        )

    def _validate_name(self, name: str) -> str:
        name = name.strip()
        if not name:
            raise BadRequestError("Name is required")
        if len(name) > SPRINT_NAME_MAX_LENGTH:
            raise BadRequestError(
                f"Name must be at most {SPRINT_NAME_MAX_LENGTH} characters"
            )
        return name

    def _validate_goal(self, goal: Optional[str]) -> Optional[str]:
        if goal is not None and len(goal) > SPRINT_GOAL_MAX_LENGTH:
            raise BadRequestError(
                f"Goal must be at most {SPRINT_GOAL_MAX_LENGTH} characters"
            )
        return goal

    def create_sprint(
        self,
        project_id: str,
        name: str,
        goal: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        budget: Optional[int] = None,
    ) -> Sprint:
        sprint = Sprint(
            project_id=project_id,
            name=self._validate_name(name),
            goal=self._validate_goal(goal),
            start_date=start_date,
            end_date=end_date,
            budget=budget,
            status="planning",
        )
        self.db.add(sprint)
        self.db.commit()
        self.db.refresh(sprint)
        return sprint

    def update_sprint(self, sprint: Sprint, changes: dict[str, Any]) -> Sprint:
        if sprint.status == "completed" and (
            "start_date" in changes or "end_date" in changes
        ):
            raise BadRequestError("Cannot modify dates of a completed sprint")

        if changes.get("name") is not None:
            sprint.name = self._validate_name(changes["name"])
        if "goal" in changes:
            sprint.goal = self._validate_goal(changes["goal"])
        for key in ("start_date", "end_date", "budget"):
            if key in changes:
                setattr(sprint, key, changes[key])
        self.db.commit()
        self.db.refresh(sprint)
        return sprint

    def delete_sprint(self, sprint: Sprint) -> None:
        """planning状態のスプリントを削除し、所属チケットをバックログへ戻す"""
        if sprint.status != "planning":
            raise BadRequestError("Can only delete sprints in planning status")
        self.db.execute(
            update(Ticket).where(Ticket.sprint_id == sprint.id).values(sprint_id=None)
        )
        self.db.delete(sprint)
        self.db.commit()

    def start_sprint(
        self,
        sprint: Sprint,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Sprint:
        """
        スプリントを開始する

        開始日の既定値は現在時刻。所属チケットの履歴を記録する。

        Raises:
            BadRequestError: planning状態でない、または他に進行中のスプリントがある場合
        """
        if sprint.status != "planning":
            raise BadRequestError("Can only start a sprint that is in planning status")

        active = self.db.scalar(
            select(Sprint).where(
                Sprint.project_id == sprint.project_id, Sprint.status == "active"
            )
        )
        if active is not None:
            raise BadRequestError(
                f'Another sprint "{active.name}" is already active. Complete it first.'
            )

        sprint.status = "active"
        sprint.start_date = start_date or sprint.start_date or utcnow()
        sprint.end_date = end_date or sprint.end_date

        for ticket in self.sprint_tickets(sprint.id):
            self.db.add(
                TicketSprintHistory(
                    ticket_id=ticket.id,
                    sprint_id=sprint.id,
                    entry_type=constants.ENTRY_ADDED,
                )
            )
        self.db.commit()
        self.db.refresh(sprint)
        logger.info(f"Sprint started: {sprint.name}")
        return sprint

    def extend_sprint(
        self,
        sprint: Sprint,
        days: Optional[int] = None,
        new_end_date: Optional[datetime] = None,
    ) -> Sprint:
        """
        進行中のスプリントの終了日を延長する

        new_end_date があればそれを、無ければ現在の終了日に days 日を加える。
        """
        if sprint.status != "active":
            raise BadRequestError("Can only extend an active sprint")

        if new_end_date is not None:
            end_date = new_end_date
        else:
            if days is None or not 1 <= days <= MAX_EXTEND_DAYS:
                raise BadRequestError(f"Days must be between 1 and {MAX_EXTEND_DAYS}")
            end_date = (sprint.end_date or utcnow()) + timedelta(days=days)

        if end_date.tzinfo is None:
            end_date = end_date.replace(tzinfo=utcnow().tzinfo)
        if end_date <= utcnow():
            raise BadRequestError("New end date must be in the future")

        sprint.end_date = end_date
        self.db.commit()
        self.db.refresh(sprint)
        return sprint

    def reopen_sprint(self, sprint: Sprint) -> Sprint:
        """
        完了したスプリントを進行中に戻す

        完了日時と完了者は消去する。チケットの移動は元に戻さない。

        Raises:
            BadRequestError: 完了状態でない、または他に進行中のスプリントがある場合
        """
        if sprint.status != "completed":
            raise BadRequestError("Can only reopen a completed sprint")

        active = self.db.scalar(
            select(Sprint).where(
                Sprint.project_id == sprint.project_id, Sprint.status == "active"
            )
        )
        if active is not None:
            raise BadRequestError(
                f'Another sprint "{active.name}" is already active. '
                "Complete it first before reopening this sprint."
            )

        sprint.status = "active"
        sprint.completed_at = None
        sprint.completed_by_id = None
        self.db.commit()
        self.db.refresh(sprint)
        logger.info(f"Sprint reopened: {sprint.name}")
        return sprint

    def burndown(self, sprint: Sprint, unit: str = "points") -> Burndown:
        """
        バーンダウンチャートのデータ

        スプリント履歴を基本とし、履歴の無い所属チケットは
        作成日時（開始日より前なら開始日）に追加されたものとみなす。
        完了日時は履歴の完了記録、まだ閉じていなければ完了列への最終更新日時を使う。
        """
        if unit not in BURNDOWN_UNITS:
            unit = "points"
        if sprint.start_date is None:
            return Burndown(sprint=sprint, unit=unit, points=[])

        done_ids = self._done_column_ids(sprint.project_id, None)
        entries: dict[str, BurndownEntry] = {}

        histories = self.db.execute(
            select(TicketSprintHistory, Ticket)
            .join(Ticket, Ticket.id == TicketSprintHistory.ticket_id)
            .where(TicketSprintHistory.sprint_id == sprint.id)
            .order_by(TicketSprintHistory.added_at)
        ).all()
        for history, ticket in histories:
            entry = BurndownEntry(
                story_points=ticket.story_points or 0, added_at=history.added_at
            )
            if history.exit_status == constants.EXIT_COMPLETED:
                entry.completed_at = history.removed_at
            elif history.removed_at is not None:
                entry.removed_at = history.removed_at
            elif ticket.sprint_id == sprint.id and ticket.column_id in done_ids:
                entry.completed_at = ticket.updated_at
            entries[ticket.id] = entry

        for ticket in self.sprint_tickets(sprint.id):
            if ticket.id in entries:
                continue
            entries[ticket.id] = BurndownEntry(
                story_points=ticket.story_points or 0,
                added_at=max(ticket.created_at, sprint.start_date),
                completed_at=ticket.updated_at if ticket.column_id in done_ids else None,
            )

        start_day = _utc_day(sprint.start_date)
        today = _utc_day(utcnow())
        if sprint.end_date is not None:
            planned_end = _utc_day(sprint.end_date)
            last_day = planned_end
            if sprint.status != "completed" and last_day > today:
                last_day = today
        else:
            planned_end = last_day = today

        return Burndown(
            sprint=sprint,
            unit=unit,
            points=burndown_points(
                list(entries.values()), start_day, last_day, planned_end, unit
            ),
        )

    # ------------------------------------------------------------------
    # 完了
    # ------------------------------------------------------------------

    def _done_column_ids(
        self, project_id: str, override: Optional[list[str]]
    ) -> set[str]:
        """完了扱いの列（指定 → プロジェクト設定 → 列名の順で決める）"""
        if override is not None:
            return set(override)
        configured = self._parse_column_ids(self.get_settings(project_id).done_column_ids)
        if configured:
            return set(configured)
        columns = self.db.scalars(
            select(BoardColumn).where(BoardColumn.project_id == project_id)
        ).all()
        return {c.id for c in columns if is_completed_column(c.name)}

    def _close_history(self, ticket_ids: list[str], sprint_id: str, exit_status: str) -> None:
        if not ticket_ids:
            return
        self.db.execute(
            update(TicketSprintHistory)
            .where(
                TicketSprintHistory.ticket_id.in_(ticket_ids),
                TicketSprintHistory.sprint_id == sprint_id,
                TicketSprintHistory.exit_status.is_(None),
            )
            .values(exit_status=exit_status, removed_at=utcnow())
        )

    def complete_sprint(
        self,
        actor: User,
        sprint: Sprint,
        action: str,
        target_sprint_id: Optional[str] = None,
        create_next_sprint: bool = False,
        done_column_ids: Optional[list[str]] = None,
    ) -> CompletionResult:
        """
        スプリントを完了する

        Args:
            action: close_to_next（次スプリントへ持ち越し）/
                close_to_backlog（バックログへ戻す）/ close_keep（そのまま残す）
            target_sprint_id: 持ち越し先（planning状態のスプリント）
            create_next_sprint: 持ち越し先を新規作成する
            done_column_ids: 完了扱いとする列

        Raises:
            BadRequestError: 進行中でない、または持ち越し先が不正な場合
        """
        if action not in COMPLETE_ACTIONS:
            raise BadRequestError("Invalid completion action")
        if sprint.status != "active":
            raise BadRequestError("Can only complete an active sprint")

        project_id = sprint.project_id
        done_ids = self._done_column_ids(project_id, done_column_ids)
        tickets = self.sprint_tickets(sprint.id)
        completed = [t for t in tickets if t.column_id in done_ids]
        incomplete = [t for t in tickets if t.column_id not in done_ids]
        incomplete_ids = [t.id for t in incomplete]

        disposition = TicketDisposition(completed=[t.id for t in completed])
        next_sprint: Optional[Sprint] = None

        if action == "close_to_next" and incomplete:
            if create_next_sprint or not target_sprint_id:
                next_sprint = Sprint(
                    project_id=project_id,
                    name=next_sprint_name(sprint.name),
                    status="planning",
                )
                self.db.add(next_sprint)
                self.db.flush()
            else:
                next_sprint = self.db.scalar(
                    select(Sprint).where(
                        Sprint.id == target_sprint_id,
                        Sprint.project_id == project_id,
                        Sprint.status == "planning",
                    )
                )
                if next_sprint is None:
                    raise BadRequestError(
                        "Target sprint not found or not in planning status"
                    )

            for ticket in incomplete:
                ticket.sprint_id = next_sprint.id
                ticket.is_carried_over = True
                ticket.carried_from_sprint_id = sprint.id
                ticket.carried_over_count = (ticket.carried_over_count or 0) + 1
            self._close_history(incomplete_ids, sprint.id, constants.EXIT_CARRIED_OVER)

            already_recorded = set(
                self.db.scalars(
                    select(TicketSprintHistory.ticket_id).where(
                        TicketSprintHistory.sprint_id == next_sprint.id,
                        TicketSprintHistory.ticket_id.in_(incomplete_ids),
                    )
                ).all()
            )
            for ticket_id in incomplete_ids:
                if ticket_id in already_recorded:
                    continue
                self.db.add(
                    TicketSprintHistory(
                        ticket_id=ticket_id,
                        sprint_id=next_sprint.id,
                        entry_type=constants.ENTRY_CARRIED_OVER,
                        carried_from_sprint_id=sprint.id,
                    )
                )
            disposition.carried_over = incomplete_ids

        elif action == "close_to_backlog" and incomplete:
            for ticket in incomplete:
                ticket.sprint_id = None
            self._close_history(incomplete_ids, sprint.id, constants.EXIT_REMOVED)
            disposition.moved_to_backlog = incomplete_ids

        self._close_history(disposition.completed, sprint.id, constants.EXIT_COMPLETED)

        sprint.status = "completed"
        sprint.completed_at = utcnow()
        sprint.completed_by_id = actor.id
        sprint.completed_ticket_count = len(completed)
        sprint.incomplete_ticket_count = len(incomplete)
        sprint.completed_story_points = sum(t.story_points or 0 for t in completed)
        sprint.incomplete_story_points = sum(t.story_points or 0 for t in incomplete)

        self.db.commit()
        self.db.refresh(sprint)
        if next_sprint is not None:
            self.db.refresh(next_sprint)

        logger.info(
            f"Sprint completed: {sprint.name} "
            f"({len(completed)} done, {len(incomplete)} incomplete, action={action})"
        )
        return CompletionResult(sprint=sprint, disposition=disposition, next_sprint=next_sprint)

    # ------------------------------------------------------------------
    # 設定
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_column_ids(raw: Optional[str]) -> list[str]:
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            return []
        return [str(c) for c in parsed] if isinstance(parsed, list) else []

    def get_settings(self, project_id: str) -> ProjectSprintSettings:
        settings = self.db.scalar(
            select(ProjectSprintSettings).where(
                ProjectSprintSettings.project_id == project_id
            )
        )
        if settings is None:
            settings = ProjectSprintSettings(
                project_id=project_id,
                default_sprint_duration=constants.DEFAULT_SPRINT_DURATION_DAYS,
            )
            self.db.add(settings)
            self.db.commit()
            self.db.refresh(settings)
        return settings

    def done_column_ids(self, settings: ProjectSprintSettings) -> list[str]:
        return self._parse_column_ids(settings.done_column_ids)

    def update_settings(
        self, project_id: str, changes: dict[str, Any]
    ) -> ProjectSprintSettings:
        settings = self.get_settings(project_id)
        duration = changes.get("default_sprint_duration")
        if duration is not None:
            if not 1 <= duration <= MAX_EXTEND_DAYS:
                raise BadRequestError(
                    f"Sprint duration must be between 1 and {MAX_EXTEND_DAYS} days"
                )
            settings.default_sprint_duration = duration
        if changes.get("auto_carry_over_incomplete") is not None:
            settings.auto_carry_over_incomplete = changes["auto_carry_over_incomplete"]
        if changes.get("done_column_ids") is not None:
            column_ids = list(dict.fromkeys(changes["done_column_ids"]))
            valid = set(
                self.db.scalars(
                    select(BoardColumn.id).where(
                        BoardColumn.project_id == project_id,
                        BoardColumn.id.in_(column_ids),
                    )
                ).all()
            )
            if len(valid) != len(column_ids):
                raise BadRequestError("Columns not found or do not belong to project")
            settings.done_column_ids = json.dumps(column_ids)
        self.db.commit()
        self.db.refresh(settings)
        return settings
