from .base import Base, BaseModel, TimeStampMixin, TZDateTime, new_id, utcnow
from .project import (
    BoardColumn,
    Invitation,
    Label,
    Project,
    ProjectMember,
    ProjectSprintSettings,
    Role,
)
from .rate_limit import RateLimit
from .session import Session
from .sprint import Sprint, TicketSprintHistory
from .system_settings import SYSTEM_SETTINGS_ID, SystemSettings
from .ticket import (
    Attachment,
    Comment,
    Ticket,
    TicketEdit,
    TicketLink,
    TicketWatcher,
    ticket_labels,
)
from .user import User

__all__ = [
    "Base",
    "BaseModel",
    "TimeStampMixin",
    "TZDateTime",
    "new_id",
    "utcnow",
    "Session",
    "User",
    "SystemSettings",
    "SYSTEM_SETTINGS_ID",
    "Project",
    "Role",
    "BoardColumn",
    "Label",
    "ProjectMember",
    "ProjectSprintSettings",
    "Invitation",
    "Sprint",
    "TicketSprintHistory",
    "Ticket",
    "ticket_labels",
    "TicketLink",
    "TicketWatcher",
    "Comment",
    "TicketEdit",
    "Attachment",
    "RateLimit",
]
