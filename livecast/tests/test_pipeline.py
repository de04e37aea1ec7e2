"""Integration tests for the full pipeline (mocked components)."""
import asyncio

import pytest

from audio.idle import IdleAudioScheduler
from audio.speech import AudioAsset, SynthesisError
from catalog.store import CatalogStore
from core.chat_queue import ChatResponseQueue
from core.config import AppConfig, ConfigManager
from core.events import EventBus, LogType
from core.main import Orchestrator
from core.session import LiveSession
from core.state import SessionStatus, SharedState
from live.base import ChatEvent, ConnectedEvent, ErrorEvent, GiftEvent
from live.demo import DemoEventSource
from live.filters import DedupFilter


def chat(message, name="Sari", user_id=None):
    return ChatEvent(
        id=f"c-{message}",
        user_id=user_id or f"user-{name}",
        username=name.lower(),
        display_name=name,
        message=message,
    )


class FakeGenerator:
    """Echoes the chat; flags overlapping calls. `gate` holds generation open."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.active = 0
        self.overlapped = False
        self.seen: list[str] = []
        self.called_at: list[float] = []
        self.gate: asyncio.Event | None = None

    async def generate(self, event, catalog):
        self.called_at.append(asyncio.get_running_loop().time())
        self.active += 1
        if self.active > 1:
            self.overlapped = True
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            self.seen.append(event.message)
            if event.message in self.fail_on:
                raise RuntimeError("model exploded")
            return f"reply to {event.message}"
        finally:
            self.active -= 1


class FakeSynthesizer:
    def __init__(self, tmp_path, fail_on=()):
        self.tmp_path = tmp_path
        self.fail_on = set(fail_on)
        self.texts: list[str] = []
        self.closed = False

    async def synthesize(self, text):
        if text in self.fail_on:
            raise SynthesisError("all keys exhausted")
        self.texts.append(text)
        return AudioAsset(path=self.tmp_path / f"{len(self.texts)}.mp3", label=text)

    def cleanup_audio(self, max_age_seconds=300):
        return 0

    async def close(self):
        self.closed = True


class FakePlayback:
    def __init__(self):
        self.played: list[str] = []
        self.closed = False

    def play(self, asset):
        self.played.append(asset.label)
        future = asyncio.get_running_loop().create_future()
        future.set_result(True)
        return future

    async def close(self, stop_current=True):
        self.closed = True


class FakeIdle:
    def __init__(self):
        self.resets = 0
        self.started = False

    def reset_idle_timer(self):
        self.resets += 1

    def start(self):
        self.started = True

    def stop(self):
        self.started = False


def make_config(**chat_overrides) -> AppConfig:
    config = AppConfig()
    config.chat.response_delay_ms = 0
    for key, value in chat_overrides.items():
        setattr(config.chat, key, value)
    return config


def make_session(tmp_path, config=None, **kwargs):
    config = config or make_config()
    parts = {
        "generator": FakeGenerator(),
        "synthesizer": FakeSynthesizer(tmp_path),
        "playback": FakePlayback(),
        "idle": FakeIdle(),
    }
    parts.update(kwargs)
    session = LiveSession(
        config=config,
        source=DemoEventSource(),
        catalog_store=CatalogStore(tmp_path),
        bus=EventBus(),
        **parts,
    )
    return session


def types_of(bus, log_type):
    return [e.data for e in reversed(bus.recent()) if e.type == log_type]


class TestSharedState:
    def test_initial_state(self):
        state = SharedState()
        assert state.status == SessionStatus.STOPPED
        assert not state.is_running

    def test_stop(self):
        state = SharedState()
        state.set_status(SessionStatus.RUNNING)
        assert state.is_running
        state.request_stop()
        assert state.stop_event.is_set()


class TestConfigIntegration:
    def test_defaults_and_persistence(self, tmp_path):
        cm = ConfigManager(tmp_path)
        assert cm.is_demo
        cm.update(idle={"interval_seconds": 45})

        reloaded = ConfigManager(tmp_path)
        assert reloaded.get_setting("idle.interval_seconds") == 45
        assert reloaded.get_setting("idle.missing", "x") == "x"

    def test_env_fills_empty_secrets(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ELEVENLABS_API_KEY", "k1, k2,")
        monkeypatch.setenv("TIKTOK_USERNAME", "shop_live")
        cm = ConfigManager(tmp_path)
        assert cm.config.api_keys.elevenlabs == ["k1", "k2"]
        assert cm.config.live.tiktok_username == "shop_live"

    def test_filter_keywords(self, tmp_path):
        cm = ConfigManager(tmp_path)
        cm.update_nested("chat", filter_keywords="Price, stock ,")
        assert cm.config.chat.keywords == ["price", "stock"]

    def test_reset(self, tmp_path):
        cm = ConfigManager(tmp_path)
        cm.update(live={"source": "tiktok"})
        assert not cm.is_demo
        cm.reset()
        assert cm.is_demo
        assert not cm.config_path.exists()


class TestEventBus:
    @pytest.mark.asyncio
    async def test_subscriber_gets_replay_then_live(self):
        bus = EventBus()
        for i in range(25):
            bus.publish(LogType.CHAT, {"n": i})
        queue = bus.subscribe()
        assert queue.qsize() == 20
        assert queue.get_nowait().data == {"n": 5}

        bus.status(True, "Bot started")
        assert queue.qsize() == 20
        assert bus.recent(1)[0].data == {"running": True, "message": "Bot started"}

    @pytest.mark.asyncio
    async def test_full_subscriber_drops_oldest(self):
        bus = EventBus(subscriber_queue_size=2)
        queue = bus.subscribe()
        for i in range(3):
            bus.publish(LogType.CHAT, {"n": i})
        assert [queue.get_nowait().data["n"] for _ in range(2)] == [1, 2]

    def test_recent_is_bounded_newest_first(self):
        bus = EventBus(max_logs=3)
        for i in range(5):
            bus.error(f"e{i}")
        assert [e.data["message"] for e in bus.recent()] == ["e4", "e3", "e2"]
        assert bus.recent()[0].to_dict()["type"] == "error"


class TestChatResponseQueue:
    def make_queue(self, tmp_path, generator=None, synthesizer=None, delay_ms=0):
        playback = FakePlayback()
        bus = EventBus()
        queue = ChatResponseQueue(
            generator=generator or FakeGenerator(),
            synthesizer=synthesizer or FakeSynthesizer(tmp_path),
            playback=playback,
            catalog_store=CatalogStore(tmp_path),
            bus=bus,
            delay_ms=delay_ms,
        )
        return queue, playback, bus

    @pytest.mark.asyncio
    async def test_replies_in_arrival_order_never_concurrent(self, tmp_path):
        generator = FakeGenerator()
        queue, playback, bus = self.make_queue(tmp_path, generator=generator)

        for i in range(5):
            queue.enqueue(chat(f"q{i}"))
        await queue.join()

        assert generator.seen == [f"q{i}" for i in range(5)]
        assert not generator.overlapped
        assert playback.played == [f"reply to q{i}" for i in range(5)]
        assert [d["response"] for d in types_of(bus, LogType.RESPONSE)] == playback.played

    @pytest.mark.asyncio
    async def test_failure_drops_only_that_event(self, tmp_path):
        queue, playback, bus = self.make_queue(
            tmp_path, generator=FakeGenerator(fail_on={"q1"})
        )
        for i in range(3):
            queue.enqueue(chat(f"q{i}"))
        await queue.join()

        assert playback.played == ["reply to q0", "reply to q2"]
        errors = types_of(bus, LogType.ERROR)
        assert errors[0]["user"] == "Sari"

    @pytest.mark.asyncio
    async def test_synthesis_failure_continues(self, tmp_path):
        synthesizer = FakeSynthesizer(tmp_path, fail_on={"reply to q0"})
        queue, playback, _ = self.make_queue(tmp_path, synthesizer=synthesizer)
        queue.enqueue(chat("q0"))
        queue.enqueue(chat("q1"))
        await queue.join()
        assert playback.played == ["reply to q1"]

    @pytest.mark.asyncio
    async def test_close_abandons_pending(self, tmp_path):
        generator = FakeGenerator()
        generator.gate = asyncio.Event()
        queue, playback, _ = self.make_queue(tmp_path, generator=generator)

        for i in range(3):
            queue.enqueue(chat(f"q{i}"))
        await asyncio.sleep(0.01)
        assert queue.is_processing
        assert queue.pending == 2

        await queue.close()
        assert queue.pending == 0
        assert playback.played == []

    @pytest.mark.asyncio
    async def test_pacing_delay_before_each_reply(self, tmp_path):
        generator = FakeGenerator()
        queue, playback, _ = self.make_queue(tmp_path, generator=generator, delay_ms=50)
        loop = asyncio.get_running_loop()

        started = loop.time()
        queue.enqueue(chat("q0"))
        queue.enqueue(chat("q1"))
        await asyncio.sleep(0.02)
        assert generator.called_at == []
        assert queue.is_processing

        await queue.join()
        first, second = generator.called_at
        # Small tolerance for timer granularity
        assert first - started >= 0.045
        assert second - first >= 0.045
        assert playback.played == ["reply to q0", "reply to q1"]


class TestLiveSession:
    @pytest.mark.asyncio
    async def test_chat_flows_to_playback(self, tmp_path):
        session = make_session(tmp_path)
        await session.handle(chat("how much?"))
        await session.chat_queue.join()

        assert session.playback.played == ["reply to how much?"]
        assert session.idle.resets == 1
        assert types_of(session.bus, LogType.CHAT)[0]["nickname"] == "Sari"

    @pytest.mark.asyncio
    async def test_duplicate_dropped_before_publish(self, tmp_path):
        session = make_session(tmp_path, dedup=DedupFilter(cooldown_ms=5000, clock=lambda: 0.0))
        await session.handle(chat("hi"))
        await session.handle(chat("hi"))
        await session.chat_queue.join()

        assert len(types_of(session.bus, LogType.CHAT)) == 1
        assert session.idle.resets == 1
        assert session.playback.played == ["reply to hi"]

    @pytest.mark.asyncio
    async def test_keyword_filter_still_counts_activity(self, tmp_path):
        config = make_config(filter_enabled=True, filter_keywords="price")
        session = make_session(tmp_path, config=config)

        await session.handle(chat("nice stream"))
        await session.handle(chat("what price?"))
        await session.chat_queue.join()

        assert len(types_of(session.bus, LogType.CHAT)) == 2
        assert session.idle.resets == 2
        assert session.generator.seen == ["what price?"]

    @pytest.mark.asyncio
    async def test_gift_thanks_bypass_chat_queue(self, tmp_path):
        session = make_session(tmp_path)
        session.generator.gate = asyncio.Event()

        await session.handle(chat("is it in stock?"))
        await session.handle(GiftEvent(user_id="u9", username="budi", display_name="Budi", gift_name="Rose"))
        await asyncio.sleep(0.01)

        assert len(session.playback.played) == 1
        assert "Budi" in session.playback.played[0]
        assert "Rose" in session.playback.played[0]

        session.generator.gate.set()
        await session.chat_queue.join()
        assert session.playback.played[-1] == "reply to is it in stock?"
        assert types_of(session.bus, LogType.GIFT)[0]["giftName"] == "Rose"

    @pytest.mark.asyncio
    async def test_gift_thanks_disabled(self, tmp_path):
        session = make_session(tmp_path, config=make_config(ack_gifts=False))
        await session.handle(GiftEvent(user_id="u9", username="budi", display_name="Budi", gift_name="Rose"))
        await asyncio.sleep(0.01)
        assert session.playback.played == []
        assert len(types_of(session.bus, LogType.GIFT)) == 1

    @pytest.mark.asyncio
    async def test_failed_thanks_reported(self, tmp_path):
        session = make_session(tmp_path)
        session.synthesizer.fail_on = {"Thank you so much Budi for the Rose!"}
        await session.acknowledge("Thank you so much Budi for the Rose!")
        assert session.playback.played == []
        assert types_of(session.bus, LogType.ERROR)[0]["message"] == "all keys exhausted"

    @pytest.mark.asyncio
    async def test_connected_starts_idle_when_enabled(self, tmp_path):
        config = make_config()
        config.idle.enabled = True
        session = make_session(tmp_path, config=config)

        await session.handle(ConnectedEvent(room_id="r1", viewer_count=12))
        assert session.idle.started
        assert session.state.connected
        assert session.state.viewer_count == 12

    @pytest.mark.asyncio
    async def test_source_error_published(self, tmp_path):
        session = make_session(tmp_path)
        await session.handle(ErrorEvent(message="room offline"))
        assert session.state.last_error == "room offline"
        assert types_of(session.bus, LogType.ERROR)[0]["message"] == "room offline"

    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path):
        session = make_session(tmp_path)
        await session.start()
        await asyncio.sleep(0.01)
        assert session.state.status == SessionStatus.RUNNING
        assert session.state.connected

        session.source.simulate_chat("hello")
        await asyncio.sleep(0.01)
        await session.chat_queue.join()
        assert session.playback.played == ["reply to hello"]

        await session.stop()
        assert session.state.status == SessionStatus.STOPPED
        assert session.state.stop_event.is_set()
        assert session.playback.closed
        assert session.synthesizer.closed
        messages = [d.get("message") for d in types_of(session.bus, LogType.STATUS)]
        assert "Bot started" in messages
        assert messages[-1] == "Bot stopped"


    @pytest.mark.asyncio
    async def test_stop_cancels_pending_scene_connect(self, tmp_path):
        class SlowSceneController:
            def __init__(self):
                self.connect_cancelled = False
                self.disconnected = False

            async def connect(self):
                try:
                    await asyncio.Event().wait()
                except asyncio.CancelledError:
                    self.connect_cancelled = True
                    raise

            async def disconnect(self):
                self.disconnected = True

        controller = SlowSceneController()
        session = make_session(tmp_path, scene_controller=controller)
        await session.start()
        await asyncio.sleep(0.01)

        await session.stop()
        assert controller.connect_cancelled
        assert controller.disconnected


class TestOrchestrator:
    @staticmethod
    def clear_env(monkeypatch):
        for name in (
            "GROQ_API_KEY",
            "OPENAI_API_KEY",
            "ANTHROPIC_API_KEY",
            "GEMINI_API_KEY",
            "ELEVENLABS_API_KEY",
            "TIKTOK_USERNAME",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_validate_requires_keys(self, tmp_path, monkeypatch):
        self.clear_env(monkeypatch)
        orchestrator = Orchestrator(tmp_path)

        with pytest.raises(ValueError, match="groq"):
            orchestrator._validate(demo=True)

        orchestrator.config_manager.update_nested("api_keys", groq="gsk")
        with pytest.raises(ValueError, match="ELEVENLABS"):
            orchestrator._validate(demo=True)

        orchestrator.config_manager.update_nested("api_keys", elevenlabs=["el-1"])
        orchestrator._validate(demo=True)
        with pytest.raises(ValueError, match="TIKTOK"):
            orchestrator._validate(demo=False)

    def test_simulate_chat_requires_demo_session(self, tmp_path):
        with pytest.raises(RuntimeError):
            Orchestrator(tmp_path).simulate_chat("hi")

    @pytest.mark.asyncio
    async def test_demo_session_lifecycle(self, tmp_path, monkeypatch):
        self.clear_env(monkeypatch)
        orchestrator = Orchestrator(tmp_path)
        orchestrator.config_manager.update_nested("api_keys", groq="gsk", elevenlabs=["el-1"])
        orchestrator.config_manager.update_nested("chat", response_delay_ms=0)

        def build(demo):
            return make_session(
                tmp_path,
                config=orchestrator.config_manager.config,
                state=orchestrator.state,
                idle=IdleAudioScheduler(FakePlayback(), orchestrator.catalog_store, tmp_path),
            )

        monkeypatch.setattr(orchestrator, "_build_session", build)

        await orchestrator.start_session(demo=True)
        assert orchestrator.status()["isRunning"]
        with pytest.raises(RuntimeError):
            await orchestrator.start_session(demo=True)

        event = orchestrator.simulate_chat("is the red shirt available?", nickname="Ana")
        assert event.display_name == "Ana"
        await asyncio.sleep(0.01)
        await orchestrator.session.chat_queue.join()
        assert orchestrator.session.playback.played == ["reply to is the red shirt available?"]

        assert await orchestrator.stop_session()
        assert not await orchestrator.stop_session()
        assert orchestrator.status()["status"] == "stopped"
        assert orchestrator.status()["idle"] is None

    @pytest.mark.asyncio
    async def test_set_idle_applies_to_running_scheduler(self, tmp_path, monkeypatch):
        self.clear_env(monkeypatch)
        orchestrator = Orchestrator(tmp_path)
        assert orchestrator.set_idle(interval_seconds=60)["interval_seconds"] == 60

        orchestrator.config_manager.update_nested("api_keys", groq="gsk", elevenlabs=["el-1"])
        scheduler = IdleAudioScheduler(FakePlayback(), orchestrator.catalog_store, tmp_path)
        monkeypatch.setattr(
            orchestrator,
            "_build_session",
            lambda demo: make_session(tmp_path, state=orchestrator.state, idle=scheduler),
        )
        await orchestrator.start_session(demo=True)
        try:
            settings = orchestrator.set_idle(interval_seconds=45, play_mode="random")
            assert settings["intervalSeconds"] == 45
            assert settings["playMode"] == "random"
            assert scheduler.interval == 45
            assert orchestrator.status()["idle"]["intervalSeconds"] == 45
            assert ConfigManager(tmp_path).config.idle.play_mode == "random"
        finally:
            await orchestrator.stop_session()

    @pytest.mark.asyncio
    async def test_built_session_publishes_playback_signals(self, tmp_path, monkeypatch):
        self.clear_env(monkeypatch)
        orchestrator = Orchestrator(tmp_path)
        orchestrator.config_manager.update_nested("api_keys", groq="gsk", elevenlabs=["el-1"])
        session = orchestrator._build_session(demo=True)

        asset = AudioAsset(path=tmp_path / "a.mp3", label="Hi Sari!")
        session.playback.on_complete(asset)
        session.playback.on_error(asset, RuntimeError("device busy"))

        assert types_of(orchestrator.bus, LogType.PLAYBACK)[0]["message"] == "Played: Hi Sari!"
        assert types_of(orchestrator.bus, LogType.ERROR)[0]["file"] == "a.mp3"
        await session.synthesizer.close()
