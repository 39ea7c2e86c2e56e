from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BaseModel, TZDateTime, new_id, utcnow

if TYPE_CHECKING:
    from .user import User


class Project(BaseModel):
    """
    プロジェクト

    Attributes:
        name: プロジェクト名
        key: チケット番号の接頭辞（大文字、最大10文字、一意）
        description: 説明
        color: 表示色
    """

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    color: Mapped[str] = mapped_column(String(16), nullable=False)

    def __repr__(self) -> str:
        return f"<Project(key={self.key})>"


class Role(BaseModel):
    """
    プロジェクト内ロール

    positionが小さいほど上位のロール。
    permissionsは権限文字列のJSON配列。
    """

    __tablename__ = "roles"
    __table_args__ = (UniqueConstraint("project_id", "name"),)

    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    permissions: Mapped[str] = mapped_column(Text, default="[]", nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class BoardColumn(Base):
    """Kanbanボードの列"""

    __tablename__ = "columns"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class Label(Base):
    """チケットラベル"""

    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("project_id", "name"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False)


class ProjectMember(BaseModel):
    """
    プロジェクトメンバー

    overridesはロール権限に加算される個別権限（JSON配列）。
    """

    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id"),)

    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[str] = mapped_column(ForeignKey("roles.id"), nullable=False)
    overrides: Mapped[Optional[str]] = mapped_column(Text)

    user: Mapped["User"] = relationship(lazy="joined")
    role: Mapped["Role"] = relationship(lazy="joined")


class ProjectSprintSettings(BaseModel):
    """プロジェクトごとのスプリント設定"""

    __tablename__ = "project_sprint_settings"

    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    default_sprint_duration: Mapped[int] = mapped_column(
        Integer, default=14, nullable=False
    )
    auto_carry_over_incomplete: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False
    )
    # 完了扱いとする列IDのJSON配列
    done_column_ids: Mapped[str] = mapped_column(Text, default="[]", nullable=False)


class Invitation(Base):
    """プロジェクト招待"""

    __tablename__ = "invitations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_id)
    project_id: Mapped[str] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL")
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(64), nullable=False)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(TZDateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="pending", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TZDateTime, default=utcnow, nullable=False
    )
