"""リアルタイムイベント配信"""

from .broker import (
    DATABASE_CHANNEL,
    PROJECTS_CHANNEL,
    USERS_CHANNEL,
    EventBroker,
    Subscription,
    build_event,
    get_broker,
    project_channel,
)

__all__ = [
    "DATABASE_CHANNEL",
    "PROJECTS_CHANNEL",
    "USERS_CHANNEL",
    "EventBroker",
    "Subscription",
    "build_event",
    "get_broker",
    "project_channel",
]
