"""
イベントブローカーの単体テスト
"""

import asyncio
from typing import Any

import pytest

from punt.domain.exceptions import TooManyConnectionsError
from punt.infrastructure.events import (
    DATABASE_CHANNEL,
    PROJECTS_CHANNEL,
    EventBroker,
    build_event,
    project_channel,
)


def test_build_event() -> None:
    """type / userId / timestamp / tabId が付与されること"""
    event = build_event("ticket.created", "u-1", "tab-1", ticketId="t-1")

    assert event["type"] == "ticket.created"
    assert event["userId"] == "u-1"
    assert event["tabId"] == "tab-1"
    assert event["ticketId"] == "t-1"
    assert isinstance(event["timestamp"], int)


def test_build_event_without_tab() -> None:
    assert "tabId" not in build_event("users.updated", "u-1")


class TestEventBroker:
    """購読と配信"""

    def test_publish_to_matching_channel(self) -> None:
        broker = EventBroker()

        async def scenario() -> tuple[int, int, dict[str, Any]]:
            sub = broker.subscribe([project_channel("p-1")], "u-1")
            other = broker.subscribe([PROJECTS_CHANNEL], "u-2")

            delivered = broker.publish(project_channel("p-1"), {"type": "ticket.updated"})
            event = await asyncio.wait_for(sub.queue.get(), timeout=1)
            pending = other.queue.qsize()
            broker.unsubscribe(sub)
            broker.unsubscribe(other)
            return delivered, pending, event

        delivered, pending, event = asyncio.run(scenario())

        assert delivered == 1
        assert pending == 0
        assert event == {"type": "ticket.updated"}

    def test_database_channel_reaches_everyone(self) -> None:
        """database チャンネルは全購読者に配信されること"""
        broker = EventBroker()

        async def scenario() -> int:
            broker.subscribe([PROJECTS_CHANNEL], "u-1")
            broker.subscribe([project_channel("p-1")], "u-2")
            return broker.publish(DATABASE_CHANNEL, {"type": "database.wiped"})

        assert asyncio.run(scenario()) == 2

    def test_subscriber_count(self) -> None:
        broker = EventBroker()

        async def scenario() -> tuple[int, int, int]:
            sub = broker.subscribe([project_channel("p-1")], "u-1")
            broker.subscribe([PROJECTS_CHANNEL], "u-1")
            counts = (
                broker.subscriber_count(),
                broker.subscriber_count(project_channel("p-1")),
            )
            broker.unsubscribe(sub)
            return counts[0], counts[1], broker.subscriber_count()

        assert asyncio.run(scenario()) == (2, 1, 1)

    def test_per_user_connection_limit(self) -> None:
        """ユーザーごとの接続数上限を超えるとエラーになること"""
        broker = EventBroker(max_per_user=2)

        async def scenario() -> None:
            broker.subscribe([PROJECTS_CHANNEL], "u-1")
            broker.subscribe([PROJECTS_CHANNEL], "u-1")
            broker.subscribe([PROJECTS_CHANNEL], "u-2")
            broker.subscribe([PROJECTS_CHANNEL], "u-1")

        with pytest.raises(TooManyConnectionsError):
            asyncio.run(scenario())
        assert broker.subscriber_count() == 3

    def test_per_project_connection_limit(self) -> None:
        broker = EventBroker(max_per_project=1)

        async def scenario() -> None:
            broker.subscribe([project_channel("p-1")], "u-1")
            broker.subscribe([project_channel("p-2")], "u-2")
            broker.subscribe([project_channel("p-1")], "u-3")

        with pytest.raises(TooManyConnectionsError):
            asyncio.run(scenario())
