from loguru import logger

from llm.base import BaseLLM, CompletionError


class ClaudeProvider(BaseLLM):
    """Anthropic Claude provider."""

    def __init__(self, api_key: str, model: str = "claude-haiku-4-5-20251001"):
        self.api_key = api_key
        self.model = model
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from anthropic import AsyncAnthropic
            self._client = AsyncAnthropic(api_key=self.api_key)

    async def complete(self, messages, max_tokens=300, temperature=0.8, top_p=0.9) -> str:
        if not self.api_key:
            raise CompletionError("Claude API key not configured.")

        self._ensure_client()

        # Separate system message from conversation
        system_msg = ""
        conversation = []
        for msg in messages:
            if msg["role"] == "system":
                system_msg = msg["content"]
            else:
                conversation.append(msg)

        # Claude rejects temperature and top_p together on newer models
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_msg,
                messages=conversation,
            )
        except Exception as e:
            logger.error("Claude completion error: {}", e)
            raise CompletionError(str(e)) from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
