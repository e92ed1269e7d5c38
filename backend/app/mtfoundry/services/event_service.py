"""Event Service

运行快照的发布与检索（生成/执行进度推送给展示层）。
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 2000


@dataclass(frozen=True)
class RunEvent:
    """运行事件

    event_type: generation.started / generation.progress / generation.completed /
    generation.cancelled / execution.started / execution.progress /
    execution.completed / execution.cancelled / execution.empty / history.recorded
    """
    event_type: str
    data: Optional[dict[str, Any]] = None
    id: UUID = field(default_factory=uuid4)
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        payload = json.dumps(self.data) if self.data is not None else "{}"
        return f"id: {self.id}\nevent: {self.event_type}\ndata: {payload}\n\n"


class EventBroker:
    """内存版事件代理

    - emit() 同步扇出到所有订阅队列，不会挂起调用方
    - 保留最近的事件，支持 Last-Event-ID 补发
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self._recent: deque[RunEvent] = deque(maxlen=buffer_size)
        self._subscribers: set[asyncio.Queue] = set()

    def emit(self, event_type: str, data: Optional[dict[str, Any]] = None) -> RunEvent:
        """发布一个运行事件"""
        event = RunEvent(event_type=event_type, data=data)
        self._recent.append(event)
        for queue in list(self._subscribers):
            queue.put_nowait(event)
        logger.debug(f"event emitted: {event_type}")
        return event

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def get_events(
        self,
        last_event_id: Optional[str] = None,
        prefix: Optional[str] = None,
    ) -> list[RunEvent]:
        """获取缓存的事件列表

        支持 Last-Event-ID 补发；prefix 按事件类型前缀过滤（如 "execution."）。
        """
        events = list(self._recent)
        if last_event_id:
            try:
                last_uuid = UUID(last_event_id)
            except ValueError:
                last_uuid = None
            if last_uuid is not None:
                for i, event in enumerate(events):
                    if event.id == last_uuid:
                        events = events[i + 1:]
                        break
        if prefix:
            events = [e for e in events if e.event_type.startswith(prefix)]
        return events

    def clear(self) -> None:
        self._recent.clear()


# 全局事件代理
_event_broker: Optional[EventBroker] = None


def get_event_broker() -> EventBroker:
    """获取全局事件代理"""
    global _event_broker
    if _event_broker is None:
        _event_broker = EventBroker()
    return _event_broker


def reset_event_broker() -> None:
    """重置事件代理（用于测试）"""
    global _event_broker
    _event_broker = None
