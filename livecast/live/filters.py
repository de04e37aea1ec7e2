import time
from dataclasses import dataclass
from typing import Callable

from loguru import logger

from live.base import ChatEvent


@dataclass
class FilterResult:
    forwarded: bool = True
    reason: str = ""


class DedupFilter:
    """Drops repeats of the same (user, message) within a cooldown window.

    Events from one source are handled one at a time, so no lock is needed.
    """

    def __init__(self, cooldown_ms: int = 5000, clock: Callable[[], float] = time.monotonic):
        self.cooldown = cooldown_ms / 1000
        self._clock = clock
        self._expiry: dict[tuple[str, str], float] = {}

    def check(self, event: ChatEvent) -> FilterResult:
        now = self._clock()
        self._purge(now)

        key = event.dedup_key
        if key in self._expiry:
            logger.debug("[CHAT] Duplicate from {} dropped: '{}'", event.username, event.message[:40])
            return FilterResult(forwarded=False, reason="duplicate")

        self._expiry[key] = now + self.cooldown
        return FilterResult(forwarded=True)

    def _purge(self, now: float) -> None:
        expired = [key for key, expires_at in self._expiry.items() if expires_at <= now]
        for key in expired:
            del self._expiry[key]

    def __len__(self) -> int:
        return len(self._expiry)


class KeywordFilter:
    """Optional allow-list: only chats mentioning a keyword get answered."""

    def __init__(self, keywords: list[str], enabled: bool = True):
        self.keywords = [k.lower() for k in keywords if k]
        self.enabled = enabled and bool(self.keywords)

    def check(self, event: ChatEvent) -> FilterResult:
        if not self.enabled:
            return FilterResult(forwarded=True)

        lower = event.message.lower()
        for keyword in self.keywords:
            if keyword in lower:
                return FilterResult(forwarded=True)

        logger.debug("[CHAT] No filter keyword in '{}', skipping.", event.message[:40])
        return FilterResult(forwarded=False, reason="no_keyword")
