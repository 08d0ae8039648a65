from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

log = logging.getLogger("topup.events")

ORDERS_TOPIC = "orders"


def user_topic(user_id: int) -> str:
    return f"user:{user_id}"


class EventBroker:
    """按 topic 分发的进程内事件通道。

    订阅者的生命周期绑定在 subscribe() 上下文里，连接断开退出上下文即注销。
    推送方式（SSE / websocket / 机器人）由上层自行实现。
    """

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._topics: dict[str, set[asyncio.Queue]] = defaultdict(set)

    @asynccontextmanager
    async def subscribe(self, topic: str) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        self._topics[topic].add(queue)
        try:
            yield queue
        finally:
            subscribers = self._topics.get(topic)
            if subscribers is not None:
                subscribers.discard(queue)
                if not subscribers:
                    del self._topics[topic]

    def publish(self, topic: str, event: str, data: dict[str, Any]) -> int:
        delivered = 0
        for queue in list(self._topics.get(topic, ())):
            try:
                queue.put_nowait({"event": event, "data": data})
                delivered += 1
            except asyncio.QueueFull:
                log.warning("subscriber queue full on %s, dropping %s", topic, event)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))


broker = EventBroker()
