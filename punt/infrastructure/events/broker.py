"""
プロセス内のイベント配信（Pub/Sub）

SSEストリームごとに asyncio.Queue を購読者として登録し、
publish() で該当チャンネルの購読者へイベントを配る。
同期のルートハンドラ（スレッドプール上）からも呼べるよう、
キューへの投入は購読者のイベントループに call_soon_threadsafe で委ねる。

チャンネル:
    projects          プロジェクト一覧の変更
    project:<id>      プロジェクト内のチケット・スプリント・ラベル等の変更
    users             ユーザープロフィールの変更
    database          全消去・インポート（全購読者に配信）
"""

import asyncio
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from punt.core.logging import get_logger
from punt.domain.exceptions import TooManyConnectionsError

logger = get_logger(__name__)

PROJECTS_CHANNEL = "projects"
USERS_CHANNEL = "users"
DATABASE_CHANNEL = "database"

MAX_CONNECTIONS_PER_USER = 10
MAX_CONNECTIONS_PER_PROJECT = 500
QUEUE_MAX_SIZE = 1000


def project_channel(project_id: str) -> str:
    """プロジェクト単位のチャンネル名"""
    return f"project:{project_id}"


def build_event(
    event_type: str,
    user_id: Optional[str],
    tab_id: Optional[str] = None,
    **payload: Any,
) -> dict[str, Any]:
    """
    イベントのJSON構造を組み立てる

    Args:
        event_type: "ticket.created" などのイベント種別
        user_id: 操作したユーザーID
        tab_id: 操作元ブラウザタブ（X-Tab-Id）
        payload: 追加のフィールド（camelCaseで渡す）

    Returns:
        type / userId / timestamp（ミリ秒）を含む辞書
    """
    event: dict[str, Any] = {
        "type": event_type,
        "userId": user_id,
        "timestamp": int(time.time() * 1000),
    }
    if tab_id:
        event["tabId"] = tab_id
    event.update(payload)
    return event


@dataclass(eq=False)
class Subscription:
    """SSEストリーム1本分の購読"""

    channels: frozenset[str]
    user_id: str
    loop: asyncio.AbstractEventLoop
    queue: "asyncio.Queue[dict[str, Any]]" = field(
        default_factory=lambda: asyncio.Queue(maxsize=QUEUE_MAX_SIZE)
    )

    def wants(self, channel: str) -> bool:
        return channel == DATABASE_CHANNEL or channel in self.channels

    def _put(self, event: dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(f"Dropping event for slow SSE subscriber {self.user_id}")


class EventBroker:
    """
    イベントブローカー
    """

    def __init__(
        self,
        max_per_user: int = MAX_CONNECTIONS_PER_USER,
        max_per_project: int = MAX_CONNECTIONS_PER_PROJECT,
    ) -> None:
        self._subscriptions: set[Subscription] = set()
        self._lock = threading.Lock()
        self.max_per_user = max_per_user
        self.max_per_project = max_per_project

    def subscribe(self, channels: Iterable[str], user_id: str) -> Subscription:
        """
        購読を登録する（イベントループ内から呼ぶこと）

        Raises:
            TooManyConnectionsError: ユーザーまたはプロジェクトの接続数上限を超えた場合
        """
        wanted = frozenset(channels)
        subscription = Subscription(
            channels=wanted, user_id=user_id, loop=asyncio.get_running_loop()
        )

        with self._lock:
            per_user = sum(1 for s in self._subscriptions if s.user_id == user_id)
            if per_user >= self.max_per_user:
                raise TooManyConnectionsError()

            per_channel = Counter(
                c for s in self._subscriptions for c in s.channels if c in wanted
            )
            for channel in wanted:
                if (
                    channel.startswith("project:")
                    and per_channel[channel] >= self.max_per_project
                ):
                    raise TooManyConnectionsError("Project connection limit reached")

            self._subscriptions.add(subscription)

        logger.debug(f"SSE subscribed: {user_id} -> {sorted(wanted)}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """購読を解除する"""
        with self._lock:
            self._subscriptions.discard(subscription)

    def publish(self, channel: str, event: dict[str, Any]) -> int:
        """
        イベントを配信する（任意のスレッドから呼べる）

        Returns:
            配信先の購読数
        """
        with self._lock:
            targets = [s for s in self._subscriptions if s.wants(channel)]

        delivered = 0
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(subscription._put, event)
                delivered += 1
            except RuntimeError:
                # イベントループ終了済み
                self.unsubscribe(subscription)
        return delivered

    def subscriber_count(self, channel: Optional[str] = None) -> int:
        """購読数（channel指定時はそのチャンネルを受信する購読のみ）"""
        with self._lock:
            if channel is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.wants(channel))


broker = EventBroker()


def get_broker() -> EventBroker:
    """アプリケーション共有のブローカー"""
    return broker
