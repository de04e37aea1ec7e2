from loguru import logger

from llm.base import BaseLLM, CompletionError


class OpenAIProvider(BaseLLM):
    """OpenAI ChatGPT provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini"):
        self.api_key = api_key
        self.model = model
        self._client = None

    def _ensure_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)

    async def complete(self, messages, max_tokens=300, temperature=0.8, top_p=0.9) -> str:
        if not self.api_key:
            raise CompletionError("OpenAI API key not configured.")

        self._ensure_client()

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                top_p=top_p,
            )
        except Exception as e:
            logger.error("OpenAI completion error: {}", e)
            raise CompletionError(str(e)) from e

        choice = response.choices[0] if response.choices else None
        return (choice.message.content or "") if choice else ""
