import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from audio.elevenlabs import SpeechService, SpeechServiceError
from audio.key_pool import ApiKeyPool
from audio.usage import UsageStats

QUOTA_STATUS_CODES = {401, 429}
QUOTA_KEYWORDS = ("quota", "limit", "exceeded", "credits", "unauthorized", "insufficient")


@dataclass(frozen=True)
class AudioAsset:
    path: Path
    created_at: float = field(default_factory=time.time)
    label: str = ""


class SynthesisError(Exception):
    """Text could not be turned into audio."""


class KeysExhaustedError(SynthesisError):
    """Every configured key failed with a quota/auth error in one cycle."""


def is_quota_error(error: Exception) -> bool:
    """Quota/auth-like failures are worth retrying on another key."""
    if getattr(error, "status_code", None) in QUOTA_STATUS_CODES:
        return True
    message = str(error).lower()
    return any(keyword in message for keyword in QUOTA_KEYWORDS)


class SpeechSynthesizer:
    """Converts text to an audio file, failing over across the key pool.

    This is the only retry policy in the pipeline: on a quota-like error the
    next key is tried, at most once per key; any other error surfaces at once.
    The key cursor is shared by every request, so it only advances when the
    key that failed is still the current one.
    """

    def __init__(
        self,
        service: SpeechService,
        key_pool: ApiKeyPool,
        audio_dir: Path,
        usage: Optional[UsageStats] = None,
        on_usage: Optional[Callable[[dict], None]] = None,
        suffix: str = ".mp3",
    ):
        self.service = service
        self.key_pool = key_pool
        self.audio_dir = audio_dir
        self.usage = usage or UsageStats()
        self.on_usage = on_usage
        self.suffix = suffix
        self.audio_dir.mkdir(parents=True, exist_ok=True)

    async def synthesize(self, text: str) -> AudioAsset:
        if not text or not text.strip():
            raise SynthesisError("Nothing to synthesize")

        logger.info("[TTS] Generating speech: '{}'", text[:50])

        # One attempt per key for this request, however other requests move the cursor
        last_error: Optional[SpeechServiceError] = None
        for _ in range(len(self.key_pool)):
            key = self.key_pool.current
            try:
                audio = await self.service.synthesize(text, key)
                break
            except SpeechServiceError as e:
                if not is_quota_error(e):
                    logger.error("[TTS] Speech error: {}", e)
                    raise SynthesisError(str(e)) from e

                logger.warning(
                    "[TTS] Key {} hit quota/auth error: {}", ApiKeyPool.mask(key), e
                )
                last_error = e
                # A concurrent request may already have moved past this key
                if len(self.key_pool) > 1 and self.key_pool.current == key:
                    self.key_pool.rotate()
        else:
            raise KeysExhaustedError(
                f"All {len(self.key_pool)} speech API keys failed: {last_error}"
            ) from last_error

        asset = self._save(audio, text)
        self.usage.record(text)
        if self.on_usage is not None:
            self.on_usage(self.usage.snapshot())
        return asset

    def _save(self, audio: bytes, text: str) -> AudioAsset:
        path = self.audio_dir / f"tts-{time.time_ns()}{self.suffix}"
        path.write_bytes(audio)
        logger.info("[TTS] Audio saved: {}", path.name)
        return AudioAsset(path=path, label=text[:50])

    def cleanup_audio(self, max_age_seconds: float = 300) -> int:
        """Delete synthesized files older than max_age_seconds."""
        now = time.time()
        deleted = 0
        for path in self.audio_dir.glob(f"tts-*{self.suffix}"):
            try:
                if now - path.stat().st_mtime > max_age_seconds:
                    path.unlink()
                    deleted += 1
            except OSError as e:
                logger.warning("Could not clean up {}: {}", path.name, e)

        if deleted:
            logger.info("[TTS] Cleaned up {} old audio files", deleted)
        return deleted

    async def close(self) -> None:
        await self.service.close()
