"""
Engagement Manager - detector ownership and engagement flags

Two independent switches:
- engine_running: a detector instance exists and is emitting events
- processing_enabled: detected speech is acted upon

Keeping them apart lets the detector stay warm while input is muted, so
mute/unmute is instant. Only this class creates, resumes or destroys the
detector; create/destroy calls are serialized by a lock.

Also hosts the one-shot auto-start routine and the restart reactor that
recreates the detector after a settings or transcription backend change.
"""

import asyncio
from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Optional, Union

import structlog

from voicelink.core.config import config
from voicelink.core.error_handling import ErrorHandler, get_error_handler, log_and_return_error
from voicelink.core.events import EngineConfig, VADSettings
from voicelink.core.exceptions import ConfigurationError, EngineCreationError, VoiceLinkError
from voicelink.core.readiness import ReadinessSnapshot, is_ready, missing_requirements
from voicelink.core.session_controller import SessionLifecycleController
from voicelink.core.timers import Scheduler, TimerHandle
from voicelink.services.protocols import DetectionEngine, EngineFactory, Notifier
from voicelink.services.settings_store import (
    KEY_AUTO_START_ON_INIT,
    KEY_ENGINE_RUNNING,
    KEY_PROCESSING_ENABLED,
    SettingsStore,
)

logger = structlog.get_logger()


@dataclass
class EngagementState:
    """Whether input capture is active and whether speech is acted upon"""
    engine_running: bool = False
    processing_enabled: bool = True


class EngagementManager:
    """
    Owns the single detection engine instance

    Public operations never raise for expected failures (readiness gate
    closed, detector construction failed); they notify the user, record
    the error and return False instead.
    """

    def __init__(self,
                 engine_factory: EngineFactory,
                 controller: SessionLifecycleController,
                 store: SettingsStore,
                 notifier: Notifier,
                 scheduler: Scheduler,
                 readiness: Callable[[], ReadinessSnapshot],
                 state: Optional[EngagementState] = None,
                 auto_start_delay: Optional[float] = None,
                 restart_delay: Optional[float] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.engine_factory = engine_factory
        self.controller = controller
        self.store = store
        self.notifier = notifier
        self.scheduler = scheduler
        self._readiness = readiness
        self.state = state or EngagementState()
        self.auto_start_delay = (
            auto_start_delay if auto_start_delay is not None
            else config.auto_start_delay_seconds()
        )
        self.restart_delay = (
            restart_delay if restart_delay is not None
            else config.restart_delay_seconds()
        )
        self.error_handler = error_handler or get_error_handler()

        self.settings = VADSettings()
        self.auto_start_on_init = config.DEFAULT_AUTO_START_ON_INIT

        self._engine: Optional[DetectionEngine] = None
        self._lock = asyncio.Lock()

        self._auto_start_attempted = False
        self._auto_start_handle: Optional[TimerHandle] = None
        self._restart_handle: Optional[TimerHandle] = None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def has_engine(self) -> bool:
        return self._engine is not None

    @property
    def auto_start_attempted(self) -> bool:
        return self._auto_start_attempted

    @property
    def restart_pending(self) -> bool:
        return self._restart_handle is not None

    def is_ready(self) -> bool:
        return is_ready(self._readiness())

    def status(self) -> Dict[str, Any]:
        snapshot = self._readiness()
        return {
            "engagement": asdict(self.state),
            "has_engine": self.has_engine,
            "settings": self.settings.model_dump(),
            "auto_start_on_init": self.auto_start_on_init,
            "auto_start_attempted": self._auto_start_attempted,
            "restart_pending": self.restart_pending,
            "ready": is_ready(snapshot),
            "missing_requirements": missing_requirements(snapshot),
            "ai_state": self.controller.ai_state.state.value,
            "session": self.controller.snapshot(),
        }

    # ------------------------------------------------------------------
    # Startup / shutdown
    # ------------------------------------------------------------------

    async def restore(self) -> None:
        """
        Reload durable settings and preferences

        The live engine_running flag starts False: no detector exists yet,
        and only explicit action, auto-start or a restart creates one.
        """
        self.settings = await self.store.load_vad_settings()
        preferences = await self.store.load_preferences()

        self.state.processing_enabled = preferences.processing_enabled
        self.state.engine_running = False
        self.auto_start_on_init = preferences.auto_start_on_init

        logger.info("engagement.restored",
                    processing_enabled=preferences.processing_enabled,
                    auto_start_on_init=preferences.auto_start_on_init,
                    persisted_engine_running=preferences.engine_running,
                    settings=self.settings.model_dump())

    async def shutdown(self) -> None:
        """Tear down timers and the detector, keeping persisted preferences"""
        self._cancel_auto_start()
        self._cancel_restart()
        # A restart or auto-start that already fired may still create an engine
        await self.scheduler.drain()

        async with self._lock:
            if self._engine is not None or self.state.engine_running:
                await self._stop_engine(persist=False, announce=False)

        await self.controller.wait_idle()
        logger.info("engagement.shutdown")

    # ------------------------------------------------------------------
    # Engagement operations
    # ------------------------------------------------------------------

    async def set_engine_running(self, value: bool) -> bool:
        """
        Start (or resume) or stop the detector

        Returns True when the engine ends up in the requested state.
        """
        # Explicit requests supersede a pending restart
        self._cancel_restart()
        return await self._set_engine_running(value)

    async def set_processing_enabled(self, value: bool) -> bool:
        """Mute or unmute speech processing; never touches the detector"""
        previous = self.state.processing_enabled
        self.state.processing_enabled = value

        logger.info("engagement.processing.changed", previous=previous, processing_enabled=value)
        await self._persist(KEY_PROCESSING_ENABLED, value)

        if value:
            self.notifier.notify("Mic processing enabled",
                                 "Speech detection will now process audio input",
                                 level="success", duration_ms=2000)
        else:
            self.notifier.notify("Mic processing disabled",
                                 "Speech detection is muted (detector still running)",
                                 level="info", duration_ms=2000)
        return value

    async def toggle_processing_enabled(self) -> bool:
        """Single toggle path shared by local controls and the remote signal"""
        return await self.set_processing_enabled(not self.state.processing_enabled)

    async def update_settings(self, settings: Union[VADSettings, Dict[str, Any]]) -> VADSettings:
        """
        Persist new detector settings

        Raises pydantic.ValidationError for out-of-range values before
        anything is stored. A running detector is recreated.
        """
        if not isinstance(settings, VADSettings):
            settings = VADSettings.model_validate(settings)

        self.settings = settings
        await self.store.save_vad_settings(settings)
        logger.info("engagement.settings.updated", **settings.model_dump())

        if self.state.engine_running or self.restart_pending:
            await self.restart_engine(reason="settings_changed")
        return settings

    async def set_auto_start_on_init(self, value: bool) -> None:
        self.auto_start_on_init = value
        await self._persist(KEY_AUTO_START_ON_INIT, value)
        if value:
            self.evaluate_auto_start()

    # ------------------------------------------------------------------
    # Restart reactor
    # ------------------------------------------------------------------

    async def transcription_backend_changed(self) -> bool:
        """Point a running detector's output at the new transcription backend"""
        return await self.restart_engine(reason="transcription_backend_changed")

    async def restart_engine(self, reason: str) -> bool:
        """
        Stop now, start again after the restart delay

        Only acts when the engine is running or a restart is already
        pending; a second trigger replaces the pending start.
        """
        if not (self.state.engine_running or self.restart_pending):
            return False

        self._cancel_restart()
        logger.info("engagement.restart.scheduled", reason=reason, delay_seconds=self.restart_delay)

        await self._set_engine_running(False)
        self._restart_handle = self.scheduler.call_later(self.restart_delay, self._finish_restart)
        return True

    async def _finish_restart(self) -> None:
        self._restart_handle = None
        started = await self._set_engine_running(True)
        logger.info("engagement.restart.completed", started=started)

    # ------------------------------------------------------------------
    # Auto-start routine
    # ------------------------------------------------------------------

    def evaluate_auto_start(self) -> bool:
        """
        Schedule the one-shot delayed auto-start check if preconditions hold

        Call whenever readiness signals change. Returns True when a check
        was scheduled by this call.
        """
        if (not self.auto_start_on_init
                or self._auto_start_attempted
                or self._auto_start_handle is not None
                or self.state.engine_running):
            return False

        if not self.is_ready():
            logger.debug("engagement.auto_start.waiting",
                         missing=missing_requirements(self._readiness()))
            return False

        logger.info("engagement.auto_start.scheduled", delay_seconds=self.auto_start_delay)
        self._auto_start_handle = self.scheduler.call_later(self.auto_start_delay, self._auto_start_check)
        return True

    async def _auto_start_check(self) -> None:
        self._auto_start_handle = None
        self._auto_start_attempted = True

        if self.state.engine_running or not self.is_ready():
            logger.info("engagement.auto_start.skipped",
                        engine_running=self.state.engine_running,
                        missing=missing_requirements(self._readiness()))
            return

        started = await self._set_engine_running(True)
        logger.info("engagement.auto_start.completed", started=started)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _set_engine_running(self, value: bool) -> bool:
        async with self._lock:
            if value:
                return await self._start_engine()
            await self._stop_engine()
            return True

    async def _start_engine(self) -> bool:
        snapshot = self._readiness()
        if not is_ready(snapshot):
            self._fail(
                ConfigurationError("Please ensure you are connected and authenticated."),
                "start_engine",
                missing=missing_requirements(snapshot),
            )
            return False

        if self._engine is not None:
            return await self._resume_engine()

        engine_config = EngineConfig.from_settings(self.settings)
        logger.info("engagement.engine.creating", **asdict(engine_config))

        try:
            engine = await self.engine_factory.create(engine_config, self.controller.dispatch)
        except Exception as e:
            await self._abort_start(e)
            return False

        try:
            engine.start()
        except Exception as e:
            self._destroy(engine)
            await self._abort_start(e)
            return False

        self._engine = engine
        self.state.engine_running = True
        await self._persist(KEY_ENGINE_RUNNING, True)

        logger.info("engagement.engine.started", processing_enabled=self.state.processing_enabled)
        self.notifier.notify(
            "Always listening active",
            "Speech detection running and processing enabled"
            if self.state.processing_enabled
            else "Speech detection running but processing disabled",
            level="success", duration_ms=3000,
        )
        return True

    async def _resume_engine(self) -> bool:
        # Resume keeps the construction-time settings; only restart_engine() rebuilds
        try:
            self._engine.start()
        except Exception as e:
            self._destroy(self._engine)
            self._engine = None
            await self._abort_start(e)
            return False

        self.state.engine_running = True
        await self._persist(KEY_ENGINE_RUNNING, True)

        logger.info("engagement.engine.resumed")
        self.notifier.notify(
            "Voice detection resumed",
            "Speech detection active and processing enabled"
            if self.state.processing_enabled
            else "Speech detection active but processing disabled",
            level="success", duration_ms=2000,
        )
        return True

    async def _abort_start(self, error: Exception) -> None:
        if not isinstance(error, EngineCreationError):
            wrapped = EngineCreationError(str(error) or type(error).__name__)
            wrapped.__cause__ = error
            error = wrapped

        self.state.engine_running = False
        await self._persist(KEY_ENGINE_RUNNING, False)
        self._fail(error, "start_engine")

    async def _stop_engine(self, persist: bool = True, announce: bool = True) -> None:
        # Cancels the session timer and invalidates in-flight transcription
        self.controller.reset()

        engine, self._engine = self._engine, None
        if engine is not None:
            self._destroy(engine)

        self.state.engine_running = False
        if persist:
            await self._persist(KEY_ENGINE_RUNNING, False)

        logger.info("engagement.engine.stopped", had_engine=engine is not None)
        if announce:
            self.notifier.notify("Voice detection stopped",
                                 "Speech detection completely stopped.",
                                 level="info", duration_ms=2000)

    def _destroy(self, engine: DetectionEngine) -> None:
        try:
            engine.pause()
            engine.destroy()
        except Exception as e:
            # Handle is dropped either way; a leaked device is logged, not fatal
            log_and_return_error(e, operation="destroy_engine",
                                 component="engagement", handler=self.error_handler)

    async def _persist(self, key: str, value: Any) -> None:
        try:
            await self.store.set(key, value)
        except Exception as e:
            log_and_return_error(e, operation="persist", component="engagement",
                                 handler=self.error_handler, key=key)

    def _fail(self, error: VoiceLinkError, operation: str, **metadata) -> None:
        context = self.error_handler.create_context(
            error, operation=operation, component="engagement", **metadata
        )
        self.error_handler.handle_error(context)
        self.notifier.notify(error.title, str(error), level="error", duration_ms=5000)

    def _cancel_auto_start(self) -> None:
        if self._auto_start_handle is not None:
            self._auto_start_handle.cancel()
            self._auto_start_handle = None

    def _cancel_restart(self) -> None:
        if self._restart_handle is not None:
            self._restart_handle.cancel()
            self._restart_handle = None
