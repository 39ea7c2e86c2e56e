"""Server-Sent Eventsのストリーム生成"""

import asyncio
import json
from typing import Any, AsyncIterator, Iterable

from fastapi import Request
from fastapi.responses import StreamingResponse

from punt.core.logging import get_logger
from punt.infrastructure.events import (
    EventBroker,
    Subscription,
    build_event,
    get_broker,
)

logger = get_logger(__name__)

KEEPALIVE_INTERVAL_SECONDS = 30.0

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event, separators=(',', ':'))}\n\n"


async def _stream(
    request: Request,
    broker: EventBroker,
    subscription: Subscription,
    connected: dict[str, Any],
) -> AsyncIterator[str]:
    try:
        yield format_event(connected)
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(
                    subscription.queue.get(), timeout=KEEPALIVE_INTERVAL_SECONDS
                )
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_event(event)
    finally:
        broker.unsubscribe(subscription)
        logger.debug(f"SSE stream closed for user {subscription.user_id}")


def event_stream_response(
    request: Request, channels: Iterable[str], user_id: str, **payload: Any
) -> StreamingResponse:
    """
    チャンネルを購読するSSEレスポンスを返す

    接続上限を超えると TooManyConnectionsError。

    Args:
        request: 切断検知に使うリクエスト
        channels: 購読するチャンネル
        user_id: 接続ユーザー
        payload: connected イベントに含める追加フィールド
    """
    broker = get_broker()
    subscription = broker.subscribe(channels, user_id)
    connected = build_event("connected", user_id, **payload)
    return StreamingResponse(
        _stream(request, broker, subscription, connected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
