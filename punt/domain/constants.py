"""チケット・スプリントの列挙値"""

from typing import Literal

TicketType = Literal["epic", "story", "task", "bug", "subtask"]
Priority = Literal["lowest", "low", "medium", "high", "highest", "critical"]
LinkType = Literal[
    "blocks",
    "is_blocked_by",
    "relates_to",
    "duplicates",
    "is_duplicated_by",
    "clones",
    "is_cloned_by",
]
SprintStatus = Literal["planning", "active", "completed"]

# リンク種別の逆方向
INVERSE_LINK_TYPES: dict[str, str] = {
    "blocks": "is_blocked_by",
    "is_blocked_by": "blocks",
    "relates_to": "relates_to",
    "duplicates": "is_duplicated_by",
    "is_duplicated_by": "duplicates",
    "clones": "is_cloned_by",
    "is_cloned_by": "clones",
}

DEFAULT_COLUMNS: tuple[str, ...] = ("To Do", "In Progress", "Review", "Done")

DEFAULT_PROJECT_COLOR = "#3b82f6"
DEFAULT_LABEL_COLOR = "#6b7280"

PROJECT_KEY_MAX_LENGTH = 10

# スプリント履歴
ENTRY_ADDED = "added"
ENTRY_CARRIED_OVER = "carried_over"
EXIT_COMPLETED = "completed"
EXIT_CARRIED_OVER = "carried_over"
EXIT_REMOVED = "removed"

DEFAULT_SPRINT_DURATION_DAYS = 14
