import asyncio
import random
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from audio.speech import AudioAsset
from catalog.store import IdleAudio


class PlayMode(str, Enum):
    SEQUENTIAL = "sequential"
    RANDOM = "random"


class IdleAudioScheduler:
    """Plays filler audio when chat has been quiet for `interval_seconds`.

    Stopped/running state machine driven by a fixed tick. Chat activity calls
    reset_idle_timer(); after a filler plays the idle clock restarts, so
    intervals never compound.
    """

    def __init__(
        self,
        playback,
        store,
        audio_dir: Path,
        interval_seconds: float = 30,
        play_mode: str = "sequential",
        tick_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
        on_playing: Optional[Callable[[IdleAudio], None]] = None,
    ):
        self.playback = playback
        self.store = store
        self.audio_dir = audio_dir
        self.interval = interval_seconds
        self.play_mode = PlayMode.SEQUENTIAL
        self.set_play_mode(play_mode)
        self.tick = tick_seconds
        self.on_playing = on_playing
        self._clock = clock
        self._rng = rng or random.Random()

        self.is_running = False
        self.is_playing = False  # Guards against a tick re-entering mid-submission
        self.last_activity = clock()
        self._index = 0
        self._timer: Optional[asyncio.Task] = None
        self._checks: set[asyncio.Task] = set()

    def start(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

        self.is_running = True
        self.last_activity = self._clock()
        self._timer = asyncio.create_task(self._run())
        logger.info("[IDLE] Idle audio started (interval: {}s)", self.interval)

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._checks):
            task.cancel()
        self.is_running = False
        logger.info("[IDLE] Idle audio stopped")

    def reset_idle_timer(self) -> None:
        self.last_activity = self._clock()

    def set_interval(self, seconds: float) -> None:
        self.interval = seconds
        logger.info("[IDLE] Interval set to {}s", seconds)

    def set_play_mode(self, mode: str) -> None:
        self.play_mode = PlayMode.RANDOM if mode == PlayMode.RANDOM.value else PlayMode.SEQUENTIAL

    async def _run(self) -> None:
        while self.is_running:
            await asyncio.sleep(self.tick)
            # Each tick fires independently, like an interval timer
            task = asyncio.create_task(self.check())
            self._checks.add(task)
            task.add_done_callback(self._checks.discard)

    async def check(self) -> bool:
        """One tick. Returns True if a filler was submitted."""
        if not self.is_running or self.is_playing:
            return False

        if self._clock() - self.last_activity < self.interval:
            return False

        self.is_playing = True
        try:
            submitted = await self._play_next()
        finally:
            self.is_playing = False
        self.last_activity = self._clock()
        return submitted

    def _pick(self, audio_list: list[IdleAudio]) -> IdleAudio:
        if self.play_mode == PlayMode.RANDOM:
            return self._rng.choice(audio_list)
        audio = audio_list[self._index % len(audio_list)]
        self._index += 1
        return audio

    async def _play_next(self) -> bool:
        audio_list = self.store.get_active_idle_audio()
        if not audio_list:
            return False

        audio = self._pick(audio_list)
        path = self.audio_dir / audio.filename
        if not path.exists():
            logger.warning("[IDLE] Idle audio file not found: {}", path)
            return False

        logger.info("[IDLE] Playing idle audio: {}", audio.display_name)
        if self.on_playing is not None:
            self.on_playing(audio)
        await self.playback.play(AudioAsset(path=path, label=audio.display_name))
        return True

    def settings(self) -> dict:
        return {
            "isEnabled": self.is_running,
            "intervalSeconds": self.interval,
            "playMode": self.play_mode.value,
            "audioDir": str(self.audio_dir),
        }
