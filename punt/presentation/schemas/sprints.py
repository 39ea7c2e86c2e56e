"""スプリント関連のスキーマ"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import Field

from punt.domain.constants import SprintStatus

from .base import BaseSchema, TimestampSchema


class SprintSummary(BaseSchema):
    id: str
    name: str
    status: SprintStatus


class SprintResponse(SprintSummary, TimestampSchema):
    project_id: str
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[int] = None
    completed_at: Optional[datetime] = None
    completed_by_id: Optional[str] = None
    completed_ticket_count: Optional[int] = None
    incomplete_ticket_count: Optional[int] = None
    completed_story_points: Optional[int] = None
    incomplete_story_points: Optional[int] = None


class SprintCreateRequest(BaseSchema):
    name: str
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[int] = Field(default=None, ge=0)


class SprintUpdateRequest(BaseSchema):
    name: Optional[str] = None
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Optional[int] = Field(default=None, ge=0)


class SprintStartRequest(BaseSchema):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class SprintExtendRequest(BaseSchema):
    days: Optional[int] = None
    new_end_date: Optional[datetime] = None


class SprintCompleteRequest(BaseSchema):
    """
    スプリント完了リクエスト

    action:
        close_to_next     未完了チケットを次のスプリントへ持ち越す
        close_to_backlog  未完了チケットをバックログへ戻す
        close_keep        未完了チケットをそのまま残す
    """

    action: Literal["close_to_next", "close_to_backlog", "close_keep"]
    target_sprint_id: Optional[str] = None
    create_next_sprint: bool = False
    done_column_ids: Optional[list[str]] = None


class SprintCompleteResponse(BaseSchema):
    sprint: SprintResponse
    completed_tickets: list[str]
    moved_to_backlog: list[str]
    carried_over: list[str]
    next_sprint: Optional[SprintResponse] = None


class SprintSettingsResponse(BaseSchema):
    project_id: str
    default_sprint_duration: int
    auto_carry_over_incomplete: bool
    done_column_ids: list[str]


class SprintSettingsUpdateRequest(BaseSchema):
    default_sprint_duration: Optional[int] = None
    auto_carry_over_incomplete: Optional[bool] = None
    done_column_ids: Optional[list[str]] = None


class BurndownPointResponse(BaseSchema):
    date: date
    day: int
    ideal: float
    remaining: int
    scope: int
    completed: int


class BurndownSprint(SprintSummary):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class BurndownResponse(BaseSchema):
    """unit が points ならストーリーポイント、tickets なら件数"""

    sprint: BurndownSprint
    unit: Literal["points", "tickets"]
    data_points: list[BurndownPointResponse]
