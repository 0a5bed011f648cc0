"""
Test Configuration and Fixtures for VOICELINK

Provides in-memory collaborators (detector, transcriber, channel, AI state,
output queue, notifier), a virtual-time scheduler and a temporary
settings database.
"""

import asyncio
import pytest
from pathlib import Path
from typing import Optional

import numpy as np

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from voicelink.core.engagement_manager import EngagementManager, EngagementState
from voicelink.core.error_handling import ErrorHandler
from voicelink.core.events import AIState
from voicelink.core.readiness import ReadinessSnapshot
from voicelink.core.session_controller import SessionLifecycleController
from voicelink.core.timers import ManualScheduler
from voicelink.services.settings_store import SettingsStore


READY = ReadinessSnapshot(
    api_key="sk-test",
    channel_state="OPEN",
    is_authenticated=True,
    authentication_pending=False,
    transcription_ready=True,
)


class FakeEngine:
    """Detection engine that records lifecycle calls"""

    def __init__(self, config, on_event, fail_start: bool = False):
        self.config = config
        self.on_event = on_event
        self.fail_start = fail_start
        self.started = 0
        self.paused = 0
        self.destroyed = False

    def start(self):
        if self.fail_start:
            raise RuntimeError("Microphone busy")
        self.started += 1

    def pause(self):
        self.paused += 1

    def destroy(self):
        self.destroyed = True

    def emit(self, event):
        return self.on_event(event)


class FakeEngineFactory:
    """Engine factory with switchable failure modes"""

    def __init__(self):
        self.engines: list[FakeEngine] = []
        self.fail_with: Optional[Exception] = None
        self.fail_start = False

    async def create(self, config, on_event):
        if self.fail_with is not None:
            raise self.fail_with
        engine = FakeEngine(config, on_event, fail_start=self.fail_start)
        self.engines.append(engine)
        return engine

    @property
    def live(self) -> list[FakeEngine]:
        return [engine for engine in self.engines if not engine.destroyed]


class FakeTranscriber:
    """
    Transcriber returning a fixed text

    When a gate is set, transcribe() blocks until the test releases it.
    """

    def __init__(self, text: str = "hello world", identity: str = "fake:base"):
        self.text = text
        self.identity = identity
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.init_error: Optional[Exception] = None
        self.calls = 0
        self.init_calls = 0
        self.is_initialized = True

    async def initialize(self):
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error
        self.is_initialized = True

    async def transcribe(self, audio):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


class RecordingDispatcher:
    """Outbound channel that records (message, priority) pairs"""

    def __init__(self):
        self.sent: list[tuple[dict, str]] = []
        self.fail_with: Optional[Exception] = None

    async def send(self, message, priority="normal"):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((message, priority))


class FakeAIState:
    def __init__(self, state: AIState = AIState.IDLE):
        self.state = state
        self.history: list[AIState] = []

    def set_state(self, state: AIState):
        self.state = state
        self.history.append(state)


class FakeOutputQueue:
    def __init__(self):
        self.clears = 0

    def clear(self):
        self.clears += 1


class RecordingNotifier:
    def __init__(self):
        self.notifications: list[dict] = []

    def notify(self, title, description, level="info", duration_ms=None):
        self.notifications.append({
            "title": title,
            "description": description,
            "level": level,
            "duration_ms": duration_ms,
        })

    @property
    def titles(self) -> list[str]:
        return [n["title"] for n in self.notifications]


class ReadinessHolder:
    """Mutable readiness source, callable like the real provider"""

    def __init__(self, snapshot: ReadinessSnapshot = READY):
        self.snapshot = snapshot

    def __call__(self) -> ReadinessSnapshot:
        return self.snapshot


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def make_transcriber():
    """Builds extra transcribers, e.g. a replacement backend"""
    return FakeTranscriber


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def ai_state():
    return FakeAIState()


@pytest.fixture
def output_queue():
    return FakeOutputQueue()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def error_handler():
    """Fresh handler so counters never leak between tests"""
    return ErrorHandler()


@pytest.fixture
def engagement_state():
    return EngagementState()


@pytest.fixture
def readiness():
    return ReadinessHolder()


@pytest.fixture
def engine_factory():
    return FakeEngineFactory()


@pytest.fixture
def sample_audio():
    """One second of 16 kHz float32 audio"""
    t = np.linspace(0, 1.0, 16000, dtype=np.float32)
    return (0.1 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


@pytest.fixture
def controller(transcriber, dispatcher, ai_state, output_queue, notifier,
               scheduler, engagement_state, error_handler):
    return SessionLifecycleController(
        transcriber=transcriber,
        dispatcher=dispatcher,
        ai_state=ai_state,
        output_queue=output_queue,
        notifier=notifier,
        scheduler=scheduler,
        processing_enabled=lambda: engagement_state.processing_enabled,
        session_timeout=30.0,
        interrupt_text=lambda: "Interrupted by user",
        error_handler=error_handler,
    )


@pytest.fixture
async def settings_store(tmp_path):
    """Settings store on a temporary database"""
    store = SettingsStore(db_path=tmp_path / "settings.db")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def manager(engine_factory, controller, settings_store, notifier, scheduler,
            readiness, engagement_state, error_handler):
    return EngagementManager(
        engine_factory=engine_factory,
        controller=controller,
        store=settings_store,
        notifier=notifier,
        scheduler=scheduler,
        readiness=readiness,
        state=engagement_state,
        auto_start_delay=1.5,
        restart_delay=0.5,
        error_handler=error_handler,
    )
