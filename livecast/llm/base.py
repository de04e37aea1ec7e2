from abc import ABC, abstractmethod

from loguru import logger

from core.config import ConfigManager

DEFAULT_MODELS = {
    "groq": "llama-3.3-70b-versatile",
    "openai": "gpt-4o-mini",
    "claude": "claude-haiku-4-5-20251001",
    "gemini": "gemini-1.5-flash",
}


class CompletionError(Exception):
    """A hosted completion call failed (network, quota, or service error)."""


class BaseLLM(ABC):
    """Abstract base class for hosted completion providers."""

    api_key: str = ""

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        max_tokens: int = 300,
        temperature: float = 0.8,
        top_p: float = 0.9,
    ) -> str:
        """Run one completion.

        Args:
            messages: List of message dicts with "role" and "content" keys.

        Returns:
            The generated text.

        Raises:
            CompletionError: on any provider failure.
        """
        ...


class LLMRouter:
    """Routes completion requests to the provider selected in config."""

    def __init__(self, config_manager: ConfigManager):
        self.config_manager = config_manager
        self._providers: dict[str, BaseLLM] = {}

    def _get_provider(self, name: str) -> BaseLLM:
        """Get or create a provider.

        Re-reads the API key and model from config each time so that key
        updates take effect without restarting the session.
        """
        llm_config = self.config_manager.config.llm
        current_key = getattr(self.config_manager.config.api_keys, name, "")
        model = llm_config.model or DEFAULT_MODELS.get(name, "")

        cached = self._providers.get(name)
        if (
            cached is not None
            and cached.api_key == current_key
            and getattr(cached, "model", model) == model
        ):
            return cached

        if name == "groq":
            from llm.providers.groq_provider import GroqProvider
            self._providers[name] = GroqProvider(api_key=current_key, model=model)
        elif name == "openai":
            from llm.providers.openai_provider import OpenAIProvider
            self._providers[name] = OpenAIProvider(api_key=current_key, model=model)
        elif name == "gemini":
            from llm.providers.gemini_provider import GeminiProvider
            self._providers[name] = GeminiProvider(api_key=current_key, model=model)
        elif name == "claude":
            from llm.providers.claude_provider import ClaudeProvider
            self._providers[name] = ClaudeProvider(api_key=current_key, model=model)
        else:
            raise ValueError(f"Unknown LLM provider: {name}")

        logger.info("LLM provider '{}' initialized (model: {}).", name, model)
        return self._providers[name]

    def get_provider(self) -> BaseLLM:
        return self._get_provider(self.config_manager.config.llm.provider)

    async def complete(self, messages: list[dict]) -> str:
        """Complete with the active provider using the configured parameters."""
        llm_config = self.config_manager.config.llm
        return await self.get_provider().complete(
            messages,
            max_tokens=llm_config.max_tokens,
            temperature=llm_config.temperature,
            top_p=llm_config.top_p,
        )

    @property
    def has_api_key(self) -> bool:
        name = self.config_manager.config.llm.provider
        return bool(getattr(self.config_manager.config.api_keys, name, ""))
