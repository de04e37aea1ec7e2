import asyncio
from typing import Optional

from loguru import logger

from core.events import EventBus, LogType
from live.base import ChatEvent


class ChatResponseQueue:
    """Turns chat events into spoken replies, one at a time, in arrival order.

    A single worker drains the queue: pacing delay -> reply generation ->
    scene trigger -> speech synthesis -> hand-off to the playback queue.
    Any failure drops that one event and the worker moves on. The worker does
    not wait for playback, so the next reply is prepared while the previous
    one is still being spoken.
    """

    def __init__(
        self,
        generator,
        synthesizer,
        playback,
        catalog_store,
        scene_trigger=None,
        bus: Optional[EventBus] = None,
        delay_ms: int = 2000,
    ):
        self.generator = generator
        self.synthesizer = synthesizer
        self.playback = playback
        self.catalog_store = catalog_store
        self.scene_trigger = scene_trigger
        self.bus = bus or EventBus()
        self.delay = delay_ms / 1000
        self._queue: asyncio.Queue[ChatEvent] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.is_processing = False

    def enqueue(self, event: ChatEvent) -> None:
        self._queue.put_nowait(event)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            self.is_processing = True
            try:
                await self._process(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("[CHAT] Error processing chat from {}: {}", event.display_name, e)
                self.bus.error(str(e), user=event.display_name)
            finally:
                self.is_processing = False
                self._queue.task_done()

    async def _process(self, event: ChatEvent) -> None:
        # Pacing delay before every reply
        if self.delay > 0:
            await asyncio.sleep(self.delay)

        catalog = self.catalog_store.get_catalog()
        reply = await self.generator.generate(event, catalog)
        self.bus.publish(
            LogType.RESPONSE, {"nickname": event.display_name, "response": reply}
        )

        if self.scene_trigger is not None:
            scene = await self.scene_trigger.maybe_switch(event.message, catalog)
            if scene:
                self.bus.publish(LogType.STATUS, {"message": f"Switched to scene: {scene}"})

        asset = await self.synthesizer.synthesize(reply)
        self.playback.play(asset)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def clear(self) -> int:
        """Abandon events that have not started processing."""
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            dropped += 1
        return dropped

    async def join(self) -> None:
        await self._queue.join()

    async def close(self) -> None:
        """Abandon pending events and cancel the one in progress, if any."""
        dropped = self.clear()
        if dropped:
            logger.info("[CHAT] Abandoned {} pending chat event(s)", dropped)
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
