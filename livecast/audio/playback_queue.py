import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from audio.speech import AudioAsset


@dataclass
class PlaybackItem:
    asset: AudioAsset
    done: asyncio.Future


class PlaybackQueue:
    """Single FIFO shared by every audio producer in a session.

    One worker task plays items strictly one after another, so at most one
    asset is audible at any instant no matter how many producers call play().
    A playback error is reported and the worker moves on to the next item.
    """

    def __init__(
        self,
        player,
        on_complete: Optional[Callable[[AudioAsset], None]] = None,
        on_error: Optional[Callable[[AudioAsset, Exception], None]] = None,
    ):
        self.player = player  # Anything with `async play_file(path)` and `async stop()`
        self.on_complete = on_complete
        self.on_error = on_error
        self._queue: asyncio.Queue[PlaybackItem] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._current: Optional[PlaybackItem] = None
        self._closed = False

    def play(self, asset: AudioAsset) -> asyncio.Future:
        """Append an asset. The returned future resolves to True when it has
        played, or False if playback failed or the item was discarded.
        """
        done = asyncio.get_running_loop().create_future()
        if self._closed:
            logger.warning("[PLAYBACK] Queue closed, dropping {}", asset.path.name)
            done.set_result(False)
            return done

        self._queue.put_nowait(PlaybackItem(asset=asset, done=done))
        logger.debug("[PLAYBACK] Queued {} ({} pending)", asset.path.name, self._queue.qsize())
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain())
        return done

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            self._current = item
            try:
                logger.info("[PLAYBACK] Playing: {}", item.asset.path.name)
                await self.player.play_file(item.asset.path)
            except asyncio.CancelledError:
                self._resolve(item, False)
                raise
            except Exception as e:
                logger.error("[PLAYBACK] Playback error: {}", e)
                self._resolve(item, False)
                if self.on_error is not None:
                    self.on_error(item.asset, e)
            else:
                logger.debug("[PLAYBACK] Playback complete")
                self._resolve(item, True)
                if self.on_complete is not None:
                    self.on_complete(item.asset)
            finally:
                self._current = None
                self._queue.task_done()

    @staticmethod
    def _resolve(item: PlaybackItem, played: bool) -> None:
        if not item.done.done():
            item.done.set_result(played)

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def clear(self) -> int:
        """Discard everything not yet started. Returns how many were dropped."""
        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            self._resolve(item, False)
            self._queue.task_done()
            dropped += 1
        if dropped:
            logger.info("[PLAYBACK] Cleared {} pending item(s)", dropped)
        return dropped

    async def join(self) -> None:
        """Wait until every queued item has finished or failed."""
        await self._queue.join()

    async def close(self, stop_current: bool = True) -> None:
        """Stop accepting work, drop pending items, optionally cut the current one."""
        self._closed = True
        self.clear()
        if stop_current and self._current is not None:
            await self.player.stop()
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
