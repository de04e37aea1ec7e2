from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class UsageStats:
    """Character counters for the per-character billed speech service.

    Totals survive across sessions; session counters reset on start_session().
    """

    history_size: int = 50
    total_characters: int = 0
    session_characters: int = 0
    request_count: int = 0
    last_request_chars: int = 0
    history: deque = field(init=False)

    def __post_init__(self):
        self.history = deque(maxlen=self.history_size)

    def record(self, text: str) -> None:
        chars = len(text)
        self.total_characters += chars
        self.session_characters += chars
        self.request_count += 1
        self.last_request_chars = chars
        self.history.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "characters": chars,
                "text": text[:50],
            }
        )

    def start_session(self) -> None:
        self.session_characters = 0

    def snapshot(self) -> dict:
        return {
            "totalCharacters": self.total_characters,
            "sessionCharacters": self.session_characters,
            "requestCount": self.request_count,
            "lastRequestChars": self.last_request_chars,
            "history": list(self.history),
        }
