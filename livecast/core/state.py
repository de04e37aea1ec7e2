import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"    # Connecting to the live source
    RUNNING = "running"      # Answering chat
    STOPPING = "stopping"


@dataclass
class SharedState:
    """Session-visible state read by the dashboard signals and the CLI."""

    status: SessionStatus = SessionStatus.STOPPED
    demo_mode: bool = False

    # Live source info (ephemeral)
    connected: bool = False
    room_id: Optional[str] = None
    viewer_count: int = 0
    last_error: Optional[str] = None

    stop_event: asyncio.Event = field(default_factory=asyncio.Event)

    def set_status(self, status: SessionStatus) -> None:
        self.status = status

    def request_stop(self) -> None:
        self.stop_event.set()

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING
