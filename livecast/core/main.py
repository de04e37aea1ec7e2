import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from audio.usage import UsageStats
from catalog.store import CatalogStore
from core.config import ConfigManager
from core.events import EventBus, LogType
from core.session import LiveSession
from core.state import SharedState
from live.base import ChatEvent

# Base directory for the livecast package
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"


class Orchestrator:
    """App-scope owner of config, the dashboard channel, usage stats, and
    at most one running LiveSession."""

    def __init__(self, data_dir: Path = DATA_DIR):
        self.data_dir = data_dir
        self.config_manager = ConfigManager(data_dir)
        self.catalog_store = CatalogStore(data_dir)
        self.bus = EventBus()
        self.usage = UsageStats(
            history_size=self.config_manager.config.speech.usage_history_size
        )
        self.state = SharedState()
        self.session: Optional[LiveSession] = None

    @property
    def is_running(self) -> bool:
        return self.session is not None

    def _validate(self, demo: bool) -> None:
        config = self.config_manager.config
        provider = config.llm.provider
        if not getattr(config.api_keys, provider, ""):
            raise ValueError(f"API key for LLM provider '{provider}' not configured")
        if not config.api_keys.elevenlabs:
            raise ValueError("ELEVENLABS_API_KEY not configured")
        if not demo and not config.live.tiktok_username:
            raise ValueError("TIKTOK_USERNAME not configured")

    def _build_session(self, demo: bool) -> LiveSession:
        """Create every per-session component from the current config."""
        from audio.audio_player import AudioPlayer
        from audio.elevenlabs import ElevenLabsSpeechService
        from audio.idle import IdleAudioScheduler
        from audio.key_pool import ApiKeyPool
        from audio.playback_queue import PlaybackQueue
        from audio.speech import SpeechSynthesizer
        from llm.base import LLMRouter
        from llm.generator import ResponseGenerator
        from scene.trigger import SceneTrigger

        config = self.config_manager.config

        if demo:
            from live.demo import DemoEventSource
            source = DemoEventSource()
        else:
            from live.tiktok import TikTokEventSource
            source = TikTokEventSource(config.live.tiktok_username)

        generator = ResponseGenerator(
            LLMRouter(self.config_manager),
            locale=config.store.locale,
            currency=config.store.currency,
            max_response_chars=config.llm.max_response_chars,
            history_turns=config.llm.history_turns,
            prompt_turns=config.llm.prompt_turns,
            recent_replies=config.llm.recent_replies,
        )

        speech = config.speech
        service = ElevenLabsSpeechService(
            voice_id=speech.voice_id,
            model_id=speech.model_id,
            output_format=speech.output_format,
            voice_settings={
                "stability": speech.stability,
                "similarity_boost": speech.similarity_boost,
                "style": speech.style,
                "use_speaker_boost": speech.use_speaker_boost,
            },
            timeout=speech.timeout_seconds,
        )
        synthesizer = SpeechSynthesizer(
            service,
            ApiKeyPool(config.api_keys.elevenlabs),
            audio_dir=self.data_dir / "audio" / "tts",
            usage=self.usage,
            on_usage=lambda stats: self.bus.publish(LogType.USAGE, stats),
            suffix="." + speech.output_format.split("_")[0],
        )

        playback = PlaybackQueue(
            AudioPlayer(command=config.playback.command, timeout=config.playback.timeout_seconds),
            on_complete=lambda asset: self.bus.publish(
                LogType.PLAYBACK, {"message": f"Played: {asset.label or asset.path.name}"}
            ),
            on_error=lambda asset, e: self.bus.error(f"Playback error: {e}", file=asset.path.name),
        )

        idle = IdleAudioScheduler(
            playback,
            self.catalog_store,
            audio_dir=self.catalog_store.idle_audio_dir,
            interval_seconds=config.idle.interval_seconds,
            play_mode=config.idle.play_mode,
            tick_seconds=config.idle.tick_ms / 1000,
            on_playing=lambda audio: self.bus.publish(
                LogType.IDLE_AUDIO, {"message": f"Playing: {audio.display_name}"}
            ),
        )

        scene_controller = None
        if config.scene.enabled:
            from scene.obs import OBSSceneController
            scene_controller = OBSSceneController(
                host=config.scene.host,
                port=config.scene.port,
                password=config.scene.password,
                main_scene=config.scene.main_scene,
                return_to_main_on_media_end=config.scene.return_to_main_on_media_end,
            )

        return LiveSession(
            config=config,
            source=source,
            generator=generator,
            synthesizer=synthesizer,
            playback=playback,
            catalog_store=self.catalog_store,
            bus=self.bus,
            state=self.state,
            idle=idle,
            scene_trigger=SceneTrigger(scene_controller, item_alias=config.store.item_alias),
            scene_controller=scene_controller,
        )

    async def start_session(self, demo: Optional[bool] = None) -> LiveSession:
        """Validate config, build a fresh session, and connect it."""
        if self.session is not None:
            raise RuntimeError("Bot already running")

        demo = self.config_manager.is_demo if demo is None else demo
        self._validate(demo)

        self.usage.start_session()
        self.state = SharedState(demo_mode=demo)
        session = self._build_session(demo)
        await session.start()
        self.session = session
        return session

    async def stop_session(self) -> bool:
        if self.session is None:
            return False
        session, self.session = self.session, None
        await session.stop()
        return True

    def simulate_chat(self, message: Optional[str] = None, nickname: str = "Demo User") -> ChatEvent:
        """Inject a chat message (demo mode only)."""
        source = self.session.source if self.session is not None else None
        if not self.state.demo_mode or not hasattr(source, "simulate_chat"):
            raise RuntimeError("Demo mode not active")
        if message is None:
            return source.simulate_chat()
        return source.simulate_chat(message, nickname=nickname)

    def set_idle(self, interval_seconds: Optional[int] = None, play_mode: Optional[str] = None) -> dict:
        """Persist idle audio settings and apply them to the running scheduler."""
        changes = {}
        if interval_seconds is not None:
            changes["interval_seconds"] = interval_seconds
        if play_mode is not None:
            changes["play_mode"] = play_mode
        if changes:
            self.config_manager.update_nested("idle", **changes)

        idle = self.session.idle if self.session is not None else None
        if idle is None:
            return self.config_manager.config.idle.model_dump()
        if interval_seconds is not None:
            idle.set_interval(interval_seconds)
        if play_mode is not None:
            idle.set_play_mode(play_mode)
        return idle.settings()

    def status(self) -> dict:
        idle = self.session.idle if self.session is not None else None
        return {
            "isRunning": self.is_running,
            "status": self.state.status.value,
            "demoMode": self.state.demo_mode,
            "connected": self.state.connected,
            "logsCount": len(self.bus.recent()),
            "idle": idle.settings() if idle is not None else None,
        }

    async def run(self, demo: Optional[bool] = None) -> None:
        """Run one session until stop is requested."""
        session = await self.start_session(demo)
        reader = asyncio.create_task(self._demo_input()) if self.state.demo_mode else None
        try:
            await session.state.stop_event.wait()
        finally:
            if reader is not None:
                reader.cancel()
            await self.stop_session()

    async def _demo_input(self) -> None:
        """Read stdin lines as simulated chat: "auto" for a canned one, "quit" to exit."""
        logger.info('Demo mode: type a chat message, "auto" for a canned one, "quit" to exit.')
        loop = asyncio.get_running_loop()
        while self.session is not None:
            line = await loop.run_in_executor(None, sys.stdin.readline)
            if not line:
                break
            text = line.strip()
            if text.lower() == "quit":
                self.state.request_stop()
                break
            if text.lower() == "auto":
                self.simulate_chat()
            elif text:
                self.simulate_chat(text)


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="AI assistant for live-stream chat")
    parser.add_argument("--demo", action="store_true", help="simulate chat from stdin")
    parser.add_argument("--data-dir", type=Path, default=DATA_DIR)
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="INFO", format="{time:HH:mm:ss} | {level:<7} | {message}")
    logger.add(args.data_dir / "bot.log", rotation="10 MB", retention="7 days", level="DEBUG")

    orchestrator = Orchestrator(args.data_dir)

    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(orchestrator.run(demo=args.demo or None))
    except KeyboardInterrupt:
        loop.run_until_complete(orchestrator.stop_session())
    except ValueError as e:
        logger.error("Cannot start: {}", e)
        sys.exit(1)
    finally:
        loop.close()


if __name__ == "__main__":
    main()
