import asyncio
import time

from loguru import logger

from live.base import (
    ChatEvent,
    ConnectedEvent,
    DisconnectedEvent,
    ErrorEvent,
    FollowEvent,
    GiftEvent,
    LiveEventSource,
)


class TikTokEventSource(LiveEventSource):
    """TikTok Live feed via the TikTokLive client (optional dependency)."""

    def __init__(self, username: str):
        super().__init__()
        self.username = username if username.startswith("@") else f"@{username}"
        self._client = None
        self._task: asyncio.Task | None = None

    def _ensure_client(self):
        if self._client is None:
            from TikTokLive import TikTokLiveClient
            from TikTokLive.events import CommentEvent, DisconnectEvent
            from TikTokLive.events import FollowEvent as TikTokFollowEvent
            from TikTokLive.events import GiftEvent as TikTokGiftEvent

            self._client = TikTokLiveClient(unique_id=self.username)
            self._client.add_listener(CommentEvent, self._on_comment)
            self._client.add_listener(TikTokGiftEvent, self._on_gift)
            self._client.add_listener(TikTokFollowEvent, self._on_follow)
            self._client.add_listener(DisconnectEvent, self._on_disconnect)

    async def connect(self) -> ConnectedEvent:
        logger.info("Connecting to TikTok Live: {}...", self.username)
        self._ensure_client()

        try:
            self._task = await self._client.start()
        except Exception as e:
            logger.error("TikTok connection failed: {}", e)
            self.emit(ErrorEvent(message=str(e)))
            raise

        self.is_connected = True
        room_id = str(getattr(self._client, "room_id", "") or "")
        event = ConnectedEvent(room_id=room_id, viewer_count=0)
        logger.info("Connected to TikTok Live. Room ID: {}", room_id)
        self.emit(event)
        return event

    async def disconnect(self) -> None:
        if self._client is not None and self.is_connected:
            self.is_connected = False
            try:
                await self._client.disconnect()
            except Exception as e:
                logger.debug("Error while disconnecting TikTok client: {}", e)
            logger.info("Disconnected from TikTok Live.")
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @staticmethod
    def _user_fields(user) -> dict:
        return {
            "user_id": str(getattr(user, "id", "") or getattr(user, "unique_id", "")),
            "username": getattr(user, "unique_id", "") or "",
            "display_name": getattr(user, "nickname", "") or getattr(user, "unique_id", ""),
        }

    async def _on_comment(self, event) -> None:
        user = self._user_fields(event.user)
        message_id = getattr(getattr(event, "base_message", None), "message_id", None)
        chat = ChatEvent(
            id=str(message_id or f"{user['user_id']}-{time.time_ns()}"),
            message=event.comment,
            received_at=time.time(),
            **user,
        )
        logger.info("[CHAT] {}: {}", chat.display_name, chat.message)
        self.emit(chat)

    async def _on_gift(self, event) -> None:
        gift = event.gift
        user = self._user_fields(event.user)
        logger.info("[GIFT] {} sent {} x{}", user["display_name"], gift.name, event.repeat_count)
        self.emit(
            GiftEvent(
                gift_name=gift.name,
                gift_count=getattr(event, "repeat_count", 1) or 1,
                diamond_count=getattr(gift, "diamond_count", 0) or 0,
                **user,
            )
        )

    async def _on_follow(self, event) -> None:
        user = self._user_fields(event.user)
        logger.info("[FOLLOW] {} followed", user["display_name"])
        self.emit(FollowEvent(**user))

    async def _on_disconnect(self, event) -> None:
        logger.warning("Disconnected from TikTok Live.")
        self.is_connected = False
        self.emit(DisconnectedEvent(reason="remote"))
