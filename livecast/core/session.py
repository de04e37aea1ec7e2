import asyncio
from typing import Optional

from loguru import logger

from audio.speech import SynthesisError
from core.chat_queue import ChatResponseQueue
from core.config import AppConfig
from core.events import EventBus, LogType
from core.state import SessionStatus, SharedState
from live.base import (
    ChatEvent,
    ConnectedEvent,
    DisconnectedEvent,
    ErrorEvent,
    FollowEvent,
    GiftEvent,
    LiveEvent,
    LiveEventSource,
)
from live.filters import DedupFilter, KeywordFilter
from llm.prompts import FOLLOW_THANKS, GIFT_THANKS, localized


class LiveSession:
    """One running bot session, created on start and disposed on stop.

    A single consumer task reads the live source's event channel and routes
    each event. Chat goes through the dedup and keyword filters into the
    chat response queue; gift and follow thank-yous are synthesized directly
    and go straight to the playback queue, so they may be heard before
    earlier chat replies that are still being generated.
    """

    def __init__(
        self,
        config: AppConfig,
        source: LiveEventSource,
        generator,
        synthesizer,
        playback,
        catalog_store,
        bus: EventBus,
        state: Optional[SharedState] = None,
        idle=None,
        scene_trigger=None,
        scene_controller=None,
        dedup: Optional[DedupFilter] = None,
        keyword_filter: Optional[KeywordFilter] = None,
    ):
        self.config = config
        self.source = source
        self.generator = generator
        self.synthesizer = synthesizer
        self.playback = playback
        self.catalog_store = catalog_store
        self.bus = bus
        self.state = state or SharedState()
        self.idle = idle
        self.scene_trigger = scene_trigger
        self.scene_controller = scene_controller
        self.dedup = dedup or DedupFilter(cooldown_ms=config.chat.dedup_cooldown_ms)
        self.keyword_filter = keyword_filter or KeywordFilter(
            config.chat.keywords, enabled=config.chat.filter_enabled
        )
        self.chat_queue = ChatResponseQueue(
            generator=generator,
            synthesizer=synthesizer,
            playback=playback,
            catalog_store=catalog_store,
            scene_trigger=scene_trigger,
            bus=bus,
            delay_ms=config.chat.response_delay_ms,
        )

        self._consumer: Optional[asyncio.Task] = None
        self._cleanup: Optional[asyncio.Task] = None
        self._scene_connect: Optional[asyncio.Task] = None
        self._acks: set[asyncio.Task] = set()

    @property
    def locale(self) -> str:
        return self.config.store.locale

    async def start(self) -> None:
        logger.info("=== Live session starting ===")
        self.state.set_status(SessionStatus.STARTING)
        self.state.stop_event.clear()
        self._consumer = asyncio.create_task(self._consume())
        self._cleanup = asyncio.create_task(self._cleanup_loop())
        if self.scene_controller is not None:
            # Scene switching reconnects lazily if this first attempt fails
            self._scene_connect = asyncio.create_task(self.scene_controller.connect())

        try:
            await self.source.connect()
        except Exception as e:
            logger.error("Failed to connect to live source: {}", e)
            self.state.last_error = str(e)
            await self.stop()
            raise

        self.state.set_status(SessionStatus.RUNNING)
        self.bus.status(True, "Bot started", demo=self.state.demo_mode)
        logger.info("=== Assistant ready to answer chat ===")

    async def _consume(self) -> None:
        while True:
            event = await self.source.events.get()
            try:
                await self.handle(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error handling {}: {}", type(event).__name__, e)
                self.bus.error(str(e))

    async def handle(self, event: LiveEvent) -> None:
        """Route one live event. Public so tests can drive it directly."""
        if isinstance(event, ChatEvent):
            self._on_chat(event)
        elif isinstance(event, GiftEvent):
            self._on_gift(event)
        elif isinstance(event, FollowEvent):
            self._on_follow(event)
        elif isinstance(event, ConnectedEvent):
            self._on_connected(event)
        elif isinstance(event, DisconnectedEvent):
            self.state.connected = False
            self.bus.status(self.state.is_running, "Disconnected from live", reason=event.reason)
        elif isinstance(event, ErrorEvent):
            self.state.last_error = event.message
            self.bus.error(event.message)

    def _on_connected(self, event: ConnectedEvent) -> None:
        self.state.connected = True
        self.state.room_id = event.room_id
        self.state.viewer_count = event.viewer_count
        self.bus.status(
            True,
            "Connected to live",
            roomId=event.room_id,
            viewerCount=event.viewer_count,
        )
        if self.idle is not None and self.config.idle.enabled:
            self.idle.start()

    def _on_chat(self, event: ChatEvent) -> None:
        if not self.dedup.check(event).forwarded:
            return

        self.bus.publish(
            LogType.CHAT,
            {
                "id": event.id,
                "userId": event.user_id,
                "username": event.username,
                "nickname": event.display_name,
                "message": event.message,
            },
        )
        if self.idle is not None:
            self.idle.reset_idle_timer()

        if not self.keyword_filter.check(event).forwarded:
            return
        self.chat_queue.enqueue(event)

    def _on_gift(self, event: GiftEvent) -> None:
        self.bus.publish(
            LogType.GIFT,
            {
                "userId": event.user_id,
                "nickname": event.display_name,
                "giftName": event.gift_name,
                "giftCount": event.gift_count,
                "diamondCount": event.diamond_count,
            },
        )
        if self.config.chat.ack_gifts:
            text = localized(GIFT_THANKS, self.locale, name=event.display_name, gift=event.gift_name)
            self._spawn_ack(text)

    def _on_follow(self, event: FollowEvent) -> None:
        self.bus.publish(
            LogType.FOLLOW, {"userId": event.user_id, "nickname": event.display_name}
        )
        if self.config.chat.ack_follows:
            self._spawn_ack(localized(FOLLOW_THANKS, self.locale, name=event.display_name))

    def _spawn_ack(self, text: str) -> None:
        task = asyncio.create_task(self.acknowledge(text))
        self._acks.add(task)
        task.add_done_callback(self._acks.discard)

    async def acknowledge(self, text: str) -> None:
        """Speak a thank-you, bypassing the chat response queue."""
        try:
            asset = await self.synthesizer.synthesize(text)
        except SynthesisError as e:
            logger.error("[TTS] Acknowledgement failed: {}", e)
            self.bus.error(str(e))
            return
        self.playback.play(asset)

    async def _cleanup_loop(self) -> None:
        speech = self.config.speech
        while True:
            await asyncio.sleep(speech.cleanup_interval_seconds)
            self.synthesizer.cleanup_audio(speech.cleanup_max_age_seconds)

    async def stop(self) -> None:
        """Idle timer, live source, playback queue, then chat queue."""
        logger.info("Stopping live session...")
        self.state.set_status(SessionStatus.STOPPING)

        if self.idle is not None:
            self.idle.stop()

        try:
            await self.source.disconnect()
        except Exception as e:
            logger.warning("Error disconnecting live source: {}", e)

        await self.playback.close(stop_current=True)
        await self.chat_queue.close()

        tasks = [
            t
            for t in (self._consumer, self._cleanup, self._scene_connect, *self._acks)
            if t is not None
        ]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._consumer = self._cleanup = self._scene_connect = None

        await self.synthesizer.close()
        if self.scene_controller is not None:
            await self.scene_controller.disconnect()

        self.state.connected = False
        self.state.set_status(SessionStatus.STOPPED)
        self.state.request_stop()
        self.bus.status(False, "Bot stopped")
        logger.info("Live session stopped.")
