"""チケットと付随データ（コメント・リンク・添付・履歴）のスキーマ"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from punt.domain.constants import LinkType, Priority, TicketType
from punt.infrastructure.database.models import Project, Ticket, User
from punt.infrastructure.repositories.link_repository import LinkView
from punt.infrastructure.repositories.ticket_repository import TicketCounts, ticket_key

from .base import BaseSchema, TimestampSchema
from .projects import LabelResponse
from .sprints import SprintSummary
from .users import UserSummary


class TicketResponse(TimestampSchema):
    """
    チケット

    key は "PROJ-12" 形式。watchers と件数は一覧取得時にまとめて付与する。
    """

    id: str
    project_id: str
    number: int
    key: str
    title: str
    description: Optional[str] = None
    type: TicketType
    priority: Priority
    order: int
    story_points: Optional[int] = None
    estimate: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    environment: Optional[str] = None
    affected_version: Optional[str] = None
    fix_version: Optional[str] = None
    column_id: str
    assignee_id: Optional[str] = None
    creator_id: Optional[str] = None
    sprint_id: Optional[str] = None
    parent_id: Optional[str] = None
    is_carried_over: bool = False
    carried_from_sprint_id: Optional[str] = None
    carried_over_count: int = 0
    assignee: Optional[UserSummary] = None
    creator: Optional[UserSummary] = None
    sprint: Optional[SprintSummary] = None
    labels: list[LabelResponse] = Field(default_factory=list)
    watchers: list[UserSummary] = Field(default_factory=list)
    comment_count: int = 0
    subtask_count: int = 0
    attachment_count: int = 0


def build_ticket_response(
    project: Project,
    ticket: Ticket,
    watchers: Optional[list[User]] = None,
    counts: Optional[TicketCounts] = None,
) -> TicketResponse:
    response = TicketResponse.model_validate(
        {
            **{
                name: getattr(ticket, name)
                for name in TicketResponse.model_fields
                if hasattr(ticket, name) and name not in ("watchers", "labels")
            },
            "key": ticket_key(project, ticket),
            "labels": [LabelResponse.model_validate(label) for label in ticket.labels],
            "watchers": [UserSummary.model_validate(u) for u in watchers or []],
        }
    )
    if counts is not None:
        response.comment_count = counts.comments
        response.subtask_count = counts.subtasks
        response.attachment_count = counts.attachments
    return response


class TicketCreateRequest(BaseSchema):
    title: str = Field(min_length=1, max_length=500)
    description: Optional[str] = None
    type: TicketType = "task"
    priority: Priority = "medium"
    column_id: Optional[str] = None
    order: Optional[int] = None
    story_points: Optional[int] = Field(default=None, ge=0)
    estimate: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    environment: Optional[str] = None
    affected_version: Optional[str] = None
    fix_version: Optional[str] = None
    assignee_id: Optional[str] = None
    reporter_id: Optional[str] = None
    sprint_id: Optional[str] = None
    parent_id: Optional[str] = None
    label_ids: list[str] = Field(default_factory=list)
    watcher_ids: list[str] = Field(default_factory=list)


class TicketUpdateRequest(BaseSchema):
    """送られた項目のみ更新する（null は値の解除）"""

    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = None
    type: Optional[TicketType] = None
    priority: Optional[Priority] = None
    column_id: Optional[str] = None
    order: Optional[int] = None
    story_points: Optional[int] = Field(default=None, ge=0)
    estimate: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    environment: Optional[str] = None
    affected_version: Optional[str] = None
    fix_version: Optional[str] = None
    assignee_id: Optional[str] = None
    sprint_id: Optional[str] = None
    parent_id: Optional[str] = None
    label_ids: Optional[list[str]] = None
    watcher_ids: Optional[list[str]] = None


class TicketMoveRequest(BaseSchema):
    """移動先プロジェクト（IDまたはキー）"""

    target_project_id: str


class TicketMoveResponse(BaseSchema):
    ticket: TicketResponse
    source_project_id: str
    target_project_id: str


class TicketEditResponse(BaseSchema):
    id: str
    ticket_id: str
    user_id: str
    field: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime


class CommentResponse(TimestampSchema):
    id: str
    ticket_id: str
    author_id: str
    author: UserSummary
    content: str


class CommentRequest(BaseSchema):
    content: str


class LinkedTicket(BaseSchema):
    id: str
    number: int
    key: str
    title: str
    type: TicketType
    priority: Priority
    column_id: str


class LinkResponse(BaseSchema):
    id: str
    link_type: LinkType
    direction: str
    linked_ticket: LinkedTicket

    @classmethod
    def from_view(cls, project: Project, view: LinkView) -> "LinkResponse":
        linked = view.linked_ticket
        return cls(
            id=view.id,
            link_type=view.link_type,  # type: ignore[arg-type]
            direction=view.direction,
            linked_ticket=LinkedTicket(
                id=linked.id,
                number=linked.number,
                key=ticket_key(project, linked),
                title=linked.title,
                type=linked.type,  # type: ignore[arg-type]
                priority=linked.priority,  # type: ignore[arg-type]
                column_id=linked.column_id,
            ),
        )


class LinkCreateRequest(BaseSchema):
    link_type: str
    target_ticket_id: str


class AttachmentResponse(BaseSchema):
    id: str
    ticket_id: str
    uploader_id: Optional[str] = None
    filename: str
    mime_type: str
    size: int
    url: str
    created_at: datetime


class WatchResponse(BaseSchema):
    watching: bool
