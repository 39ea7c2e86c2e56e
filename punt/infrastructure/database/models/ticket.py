from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BaseModel, TZDateTime, new_id, utcnow

if TYPE_CHECKING:
    from .project import Label
    from .sprint import Sprint
    from .user import User


ticket_labels = Table(
    "ticket_labels",
    Base.metadata,
    Column(
        "ticket_id",
        ForeignKey("tickets.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "label_id",
        ForeignKey("labels.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Ticket(BaseModel):
    """
    チケット

    numberはプロジェクト内で連番（KEY-123形式で表示）。
    orderは列内での並び順。
    """

    __tablename__ = "tickets"
    __table_args__ = (UniqueConstraint("project_id", "number"),)

    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(16), default="task", nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="medium", nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    story_points: Mapped[Optional[int]] = mapped_column(Integer)
    estimate: Mapped[Optional[str]] = mapped_column(String(64))
    start_date: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    due_date: Mapped[Optional[datetime]] = mapped_column(TZDateTime)
    environment: Mapped[Optional[str]] = mapped_column(String(255))
    affected_version: Mapped[Optional[str]] = mapped_column(String(64))
    fix_version: Mapped[Optional[str]] = mapped_column(String(64))

    column_id: Mapped[str] = mapped_column(
        ForeignKey("columns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assignee_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    creator_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    sprint_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("sprints.id", ondelete="SET NULL"), index=True
    )
    is_carried_over: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    carried_from_sprint_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("sprints.id", ondelete="SET NULL")
    )
    carried_over_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    parent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("tickets.id", ondelete="SET NULL")
    )

    labels: Mapped[list["Label"]] = relationship(
        secondary=ticket_labels, lazy="selectin", order_by="Label.name"
    )
    assignee: Mapped[Optional["User"]] = relationship(
        foreign_keys=[assignee_id], lazy="joined"
    )
    creator: Mapped[Optional["User"]] = relationship(
        foreign_keys=[creator_id], lazy="joined"
    )
    sprint: Mapped[Optional["Sprint"]] = relationship(
        foreign_keys=[sprint_id], lazy="joined"
    )


class TicketLink(Base):
    """チケット間リンク（blocks, relates_toなど）"""

    __tablename__ = "ticket_links"
    __table_args__ = (UniqueConstraint("from_ticket_id", "to_ticket_id", "link_type"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    link_type: Mapped[str] = mapped_column(String(32), nullable=False)
    from_ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    to_ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, default=utcnow, nullable=False
    )


class TicketWatcher(Base):
    """チケットのウォッチャー"""

    __tablename__ = "ticket_watchers"
    __table_args__ = (UniqueConstraint("ticket_id", "user_id"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, default=utcnow, nullable=False
    )


class Comment(BaseModel):
    """チケットコメント"""

    __tablename__ = "comments"

    ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    author: Mapped["User"] = relationship(lazy="joined")


class TicketEdit(Base):
    """チケットのフィールド変更履歴"""

    __tablename__ = "ticket_edits"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, default=utcnow, nullable=False
    )


class Attachment(Base):
    """
    添付ファイルのメタデータ

    実体は UPLOAD_DIR 配下に保存され、url は /uploads/... 形式。
    """

    __tablename__ = "attachments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    ticket_id: Mapped[str] = mapped_column(
        ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    uploader_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    url: Mapped[str] = mapped_column(String(512), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, default=utcnow, nullable=False
    )
