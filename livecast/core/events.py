import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from loguru import logger

MAX_LOGS = 100
REPLAY_ON_SUBSCRIBE = 20


class LogType(str, Enum):
    CHAT = "chat"
    RESPONSE = "response"
    GIFT = "gift"
    FOLLOW = "follow"
    STATUS = "status"
    ERROR = "error"
    IDLE_AUDIO = "idle_audio"
    USAGE = "usage"
    PLAYBACK = "playback"


@dataclass
class LogEntry:
    type: LogType
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        return {"type": self.type.value, "data": self.data, "timestamp": self.timestamp}


class EventBus:
    """Outward channel for dashboard signals.

    Producers call publish(); each subscriber gets its own bounded queue.
    A full subscriber queue drops its oldest entry so producers never wait.
    """

    def __init__(self, max_logs: int = MAX_LOGS, subscriber_queue_size: int = 200):
        self._recent: deque[LogEntry] = deque(maxlen=max_logs)
        self._subscribers: list[asyncio.Queue] = []
        self._queue_size = subscriber_queue_size

    def publish(self, log_type: LogType, data: dict | None = None) -> LogEntry:
        entry = LogEntry(type=log_type, data=data or {})
        self._recent.append(entry)
        for queue in self._subscribers:
            self._offer(queue, entry)
        logger.debug("[EVENT] {} {}", log_type.value, entry.data)
        return entry

    @staticmethod
    def _offer(queue: asyncio.Queue, entry: LogEntry) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(entry)

    def subscribe(self) -> asyncio.Queue:
        """Register a subscriber, pre-loaded with the most recent entries."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        for entry in list(self._recent)[-REPLAY_ON_SUBSCRIBE:]:
            self._offer(queue, entry)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def recent(self, limit: int = MAX_LOGS) -> list[LogEntry]:
        """Most recent entries, newest first."""
        return list(reversed(self._recent))[:limit]

    def status(self, running: bool, message: str = "", **extra) -> LogEntry:
        data = {"running": running, **extra}
        if message:
            data["message"] = message
        return self.publish(LogType.STATUS, data)

    def error(self, message: str, **extra) -> LogEntry:
        return self.publish(LogType.ERROR, {"message": message, **extra})
