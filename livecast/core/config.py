import json
import os
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    provider: str = "groq"  # "groq", "openai", "claude", or "gemini"
    model: str = ""  # Empty = provider default
    max_tokens: int = 300
    temperature: float = 0.8
    top_p: float = 0.9
    max_response_chars: int = 1000
    history_turns: int = 20
    prompt_turns: int = 10  # Most recent stored turns sent with each request
    recent_replies: int = 10


class APIKeysConfig(BaseModel):
    groq: str = ""
    openai: str = ""
    claude: str = ""
    gemini: str = ""
    elevenlabs: list[str] = Field(default_factory=list)


class SpeechConfig(BaseModel):
    voice_id: str = "pNInz6obpgDQGcFmaJgB"
    model_id: str = "eleven_multilingual_v2"
    output_format: str = "mp3_44100_128"
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    use_speaker_boost: bool = True
    timeout_seconds: float = 30.0
    cleanup_max_age_seconds: int = 300
    cleanup_interval_seconds: int = 60
    usage_history_size: int = 50


class ChatConfig(BaseModel):
    response_delay_ms: int = 2000
    dedup_cooldown_ms: int = 5000
    filter_enabled: bool = False
    filter_keywords: str = ""  # Comma-separated
    ack_gifts: bool = True
    ack_follows: bool = True

    @property
    def keywords(self) -> list[str]:
        return [k.strip().lower() for k in self.filter_keywords.split(",") if k.strip()]


class IdleConfig(BaseModel):
    enabled: bool = False
    interval_seconds: int = 30
    play_mode: str = "sequential"  # "sequential" or "random"
    tick_ms: int = 1000


class LiveConfig(BaseModel):
    source: str = "demo"  # "demo" or "tiktok"
    tiktok_username: str = ""


class SceneConfig(BaseModel):
    enabled: bool = False
    host: str = "localhost"
    port: int = 4455
    password: str = ""
    main_scene: str = ""  # Empty = whatever scene is live on connect
    return_to_main_on_media_end: bool = True


class PlaybackConfig(BaseModel):
    command: list[str] = Field(
        default_factory=lambda: ["ffplay", "-nodisp", "-autoexit", "-loglevel", "error"]
    )
    timeout_seconds: float = 120.0


class StoreConfig(BaseModel):
    locale: str = "en"  # "en" or "id"
    currency: str = "rupiah"
    item_alias: str = "item"  # "item 2" selects the second catalog product


class AppConfig(BaseModel):
    llm: LLMConfig = Field(default_factory=LLMConfig)
    api_keys: APIKeysConfig = Field(default_factory=APIKeysConfig)
    speech: SpeechConfig = Field(default_factory=SpeechConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    idle: IdleConfig = Field(default_factory=IdleConfig)
    live: LiveConfig = Field(default_factory=LiveConfig)
    scene: SceneConfig = Field(default_factory=SceneConfig)
    playback: PlaybackConfig = Field(default_factory=PlaybackConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)


# Environment variables that fill in secrets left empty in config.json
ENV_API_KEYS = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "claude": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


class ConfigManager:
    """Manages application configuration with JSON persistence."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.config_path = data_dir / "config.json"
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = self._load()
            self._apply_env(self._config)
        return self._config

    def _load(self) -> AppConfig:
        """Load config from disk. Returns defaults if no config exists."""
        if self.config_path.exists():
            try:
                data = json.loads(self.config_path.read_text())
                logger.info("Configuration loaded from {}", self.config_path)
                return AppConfig(**data)
            except Exception as e:
                logger.error("Failed to load config: {}. Using defaults.", e)
        logger.info("No existing config found. Using defaults.")
        return AppConfig()

    @staticmethod
    def _apply_env(config: AppConfig) -> None:
        """Fill empty secrets from the environment (never overrides the file)."""
        for field_name, env_name in ENV_API_KEYS.items():
            value = os.environ.get(env_name, "")
            if value and not getattr(config.api_keys, field_name):
                setattr(config.api_keys, field_name, value)

        if not config.api_keys.elevenlabs:
            raw = os.environ.get("ELEVENLABS_API_KEY", "")
            config.api_keys.elevenlabs = [k.strip() for k in raw.split(",") if k.strip()]

        username = os.environ.get("TIKTOK_USERNAME", "")
        if username and not config.live.tiktok_username:
            config.live.tiktok_username = username

    def save(self) -> None:
        """Persist current config to disk."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(self.config.model_dump_json(indent=2))
        logger.debug("Configuration saved to {}", self.config_path)

    def update(self, **kwargs) -> AppConfig:
        """Update top-level config fields and save."""
        current = self.config.model_dump()
        for key, value in kwargs.items():
            if key in current:
                if isinstance(current[key], dict) and isinstance(value, dict):
                    current[key].update(value)
                else:
                    current[key] = value
        self._config = AppConfig(**current)
        self.save()
        return self._config

    def update_nested(self, section: str, **kwargs) -> AppConfig:
        """Update fields within a nested config section."""
        current = self.config.model_dump()
        if section in current and isinstance(current[section], dict):
            current[section].update(kwargs)
        self._config = AppConfig(**current)
        self.save()
        return self._config

    def get_setting(self, key: str, default=None):
        """Look up a dotted setting such as "idle.interval_seconds"."""
        node = self.config
        for part in key.split("."):
            if not hasattr(node, part):
                return default
            node = getattr(node, part)
        return node

    def reset(self) -> None:
        """Reset config to defaults."""
        self._config = AppConfig()
        if self.config_path.exists():
            self.config_path.unlink()
        logger.info("Configuration reset to defaults.")

    @property
    def is_demo(self) -> bool:
        return self.config.live.source == "demo"
