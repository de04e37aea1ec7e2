import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True)
class ChatEvent:
    id: str
    user_id: str
    username: str
    display_name: str
    message: str
    received_at: float = field(default_factory=time.time)

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.user_id, self.message)


@dataclass(frozen=True)
class GiftEvent:
    user_id: str
    username: str
    display_name: str
    gift_name: str
    gift_count: int = 1
    diamond_count: int = 0


@dataclass(frozen=True)
class FollowEvent:
    user_id: str
    username: str
    display_name: str


@dataclass(frozen=True)
class ConnectedEvent:
    room_id: str
    viewer_count: int = 0


@dataclass(frozen=True)
class DisconnectedEvent:
    reason: str = ""


@dataclass(frozen=True)
class ErrorEvent:
    message: str


LiveEvent = Union[
    ChatEvent, GiftEvent, FollowEvent, ConnectedEvent, DisconnectedEvent, ErrorEvent
]


class LiveEventSource(ABC):
    """A live-broadcast feed that pushes typed events onto its channel.

    Consumers read ``events`` in order; the source never calls back into them.
    """

    def __init__(self):
        self.events: asyncio.Queue = asyncio.Queue()
        self.is_connected = False

    def emit(self, event: LiveEvent) -> None:
        self.events.put_nowait(event)

    @abstractmethod
    async def connect(self) -> ConnectedEvent:
        """Connect to the feed. Emits and returns a ConnectedEvent."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        ...
