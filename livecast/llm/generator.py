import random
from collections import deque

from loguru import logger

from catalog.store import Catalog
from live.base import ChatEvent
from llm.prompts import (
    APOLOGY,
    STYLE_DIRECTIVES,
    build_system_prompt,
    build_user_prompt,
    localized,
)


class ResponseGenerator:
    """Turns a chat event into a spoken-style reply via the completion service.

    Keeps a rolling conversation history and a cache of recent replies, both
    scoped to one session. The recent replies are fed back into the prompt so
    the model avoids repeating itself.
    """

    def __init__(
        self,
        completion,
        locale: str = "en",
        currency: str = "",
        max_response_chars: int = 1000,
        history_turns: int = 20,
        prompt_turns: int = 10,
        recent_replies: int = 10,
        rng: random.Random | None = None,
    ):
        self.completion = completion  # Anything with `async complete(messages) -> str`
        self.locale = locale
        self.currency = currency
        self.max_response_chars = max_response_chars
        self.history: deque[dict] = deque(maxlen=history_turns)
        self.prompt_turns = prompt_turns
        self.recent_replies: deque[str] = deque(maxlen=recent_replies)
        self._rng = rng or random.Random()

    def build_messages(self, event: ChatEvent, catalog: Catalog) -> list[dict]:
        """System prompt, the most recent history turns, then the current viewer turn."""
        styles = STYLE_DIRECTIVES.get(self.locale, STYLE_DIRECTIVES["en"])
        messages = [
            {
                "role": "system",
                "content": build_system_prompt(catalog, self.locale, self.currency),
            }
        ]
        if self.prompt_turns > 0:
            messages.extend(list(self.history)[-self.prompt_turns :])
        messages.append(
            {
                "role": "user",
                "content": build_user_prompt(
                    event.display_name,
                    event.message,
                    list(self.recent_replies),
                    self._rng.choice(styles),
                ),
            }
        )
        return messages

    async def generate(self, event: ChatEvent, catalog: Catalog) -> str:
        """Generate a reply. Never raises: failures return a localized apology."""
        messages = self.build_messages(event, catalog)

        try:
            text = await self.completion.complete(messages)
        except Exception as e:
            logger.error("[LLM] Reply generation failed for {}: {}", event.display_name, e)
            return self.apology(event)

        reply = (text or "").strip()[: self.max_response_chars].strip()
        if not reply:
            logger.warning("[LLM] Empty reply for {}.", event.display_name)
            return self.apology(event)

        self.history.append({"role": "user", "content": f"{event.display_name}: {event.message}"})
        self.history.append({"role": "assistant", "content": reply})
        self.recent_replies.append(reply)

        logger.info("[LLM] Reply: {}", reply)
        return reply

    def apology(self, event: ChatEvent) -> str:
        return localized(APOLOGY, self.locale, name=event.display_name)

    def clear_history(self) -> None:
        if self.history:
            logger.debug("Conversation history cleared ({} messages)", len(self.history))
        self.history.clear()
        self.recent_replies.clear()
