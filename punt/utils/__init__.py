from .query import LIKE_ESCAPE, MAX_SEARCH_LENGTH, contains_pattern, escape_like
from .session_helper import (
    create_session,
    delete_session,
    get_client_ip,
    get_csrf_token,
    get_user_agent,
    regenerate_session_id,
    start_session,
)

__all__ = [
    "LIKE_ESCAPE",
    "MAX_SEARCH_LENGTH",
    "contains_pattern",
    "create_session",
    "delete_session",
    "escape_like",
    "get_client_ip",
    "get_csrf_token",
    "get_user_agent",
    "regenerate_session_id",
    "start_session",
]
