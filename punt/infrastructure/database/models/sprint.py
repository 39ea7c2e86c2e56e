from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BaseModel, TZDateTime, new_id, utcnow


class Sprint(BaseModel):
    """
    スプリント

    Attributes:
        status: planning / active / completed
        completed_*: 完了時に集計された統計値
    """

    __tablename__ = "sprints"

    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    goal: Mapped[Optional[str]] = mapped_column(Text)
    start_date: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    budget: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), default="planning", nullable=False)

    completed_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    completed_by_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    completed_ticket_count: Mapped[Optional[int]] = mapped_column(Integer)
    incomplete_ticket_count: Mapped[Optional[int]] = mapped_column(Integer)
    completed_story_points: Mapped[Optional[int]] = mapped_column(Integer)
    incomplete_story_points: Mapped[Optional[int]] = mapped_column(Integer)


class TicketSprintHistory(Base):
    """
    チケットのスプリント所属履歴

    entry_type: added / carried_over
    exit_status: completed / carried_over / removed（所属中はNone）
    """

    __tablename__ = "ticket_sprint_history"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sprint_id: Mapped[str] = mapped_column(
        ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False, index=True
    )
    added_at: Mapped[datetime] = mapped_column(TZDateTime, default=utcnow, nullable=False)
    removed_at: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    entry_type: Mapped[str] = mapped_column(String(16), default="added", nullable=False)
    exit_status: Mapped[Optional[str]] = mapped_column(String(16))
    carried_from_sprint_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("sprints.id", ondelete="SET NULL")
    )
