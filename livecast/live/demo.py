import time
import uuid

from loguru import logger

from live.base import (
    ChatEvent,
    ConnectedEvent,
    DisconnectedEvent,
    FollowEvent,
    GiftEvent,
    LiveEventSource,
)

DEMO_MESSAGES = [
    {"username": "user1", "nickname": "Buyer 1", "message": "hi, is this product still available?"},
    {"username": "user2", "nickname": "Buyer 2", "message": "how much is it?"},
    {"username": "user3", "nickname": "Buyer 3", "message": "any discount today?"},
    {"username": "user4", "nickname": "Buyer 4", "message": "can I pay cash on delivery?"},
    {"username": "user5", "nickname": "Buyer 5", "message": "which colors are ready?"},
]


class DemoEventSource(LiveEventSource):
    """Simulated live feed for testing without a real broadcast."""

    def __init__(self, messages: list[dict] | None = None):
        super().__init__()
        self.demo_messages = messages or DEMO_MESSAGES
        self._index = 0

    async def connect(self) -> ConnectedEvent:
        self.is_connected = True
        event = ConnectedEvent(room_id="demo", viewer_count=100)
        logger.info("Demo mode active. Simulated chats will be answered.")
        self.emit(event)
        return event

    async def disconnect(self) -> None:
        if self.is_connected:
            self.is_connected = False
            self.emit(DisconnectedEvent(reason="demo stopped"))
            logger.info("Demo mode stopped.")

    def simulate_chat(
        self,
        message: str | None = None,
        nickname: str = "Demo User",
        username: str = "demo_user",
        user_id: str | None = None,
    ) -> ChatEvent:
        """Emit a chat event. With no message, the next canned one is used."""
        if message is None:
            canned = self.demo_messages[self._index % len(self.demo_messages)]
            self._index += 1
            message = canned["message"]
            nickname = canned["nickname"]
            username = canned["username"]

        event = ChatEvent(
            id=f"demo-{uuid.uuid4().hex[:12]}",
            user_id=user_id or f"user-{username}",
            username=username,
            display_name=nickname,
            message=message,
            received_at=time.time(),
        )
        logger.info("[CHAT] {}: {}", event.display_name, event.message)
        self.emit(event)
        return event

    def simulate_gift(self, nickname: str, gift_name: str = "Rose", count: int = 1) -> GiftEvent:
        event = GiftEvent(
            user_id=f"user-{nickname}",
            username=nickname.lower().replace(" ", "_"),
            display_name=nickname,
            gift_name=gift_name,
            gift_count=count,
        )
        self.emit(event)
        return event

    def simulate_follow(self, nickname: str) -> FollowEvent:
        event = FollowEvent(
            user_id=f"user-{nickname}",
            username=nickname.lower().replace(" ", "_"),
            display_name=nickname,
        )
        self.emit(event)
        return event
