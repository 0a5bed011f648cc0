"""
VoiceClient - wiring for the voice session subsystem

Builds the session controller and engagement manager around the
collaborators supplied by the host application and keeps the readiness
snapshot they are gated on.

Example:
    async with VoiceClient(engine_factory, transcriber, dispatcher,
                           ai_state, output_queue, notifier) as client:
        client.update_readiness(api_key=key, channel_state="OPEN",
                                is_authenticated=True)
        ...
"""

import dataclasses
from typing import Any, Callable, Dict, Optional

import structlog

from voicelink.core.engagement_manager import EngagementManager, EngagementState
from voicelink.core.error_handling import log_and_return_error
from voicelink.core.readiness import ReadinessSnapshot
from voicelink.core.session_controller import SessionLifecycleController
from voicelink.core.timers import AsyncioScheduler, Scheduler
from voicelink.services.protocols import (
    AIStateSink,
    EngineFactory,
    MessageDispatcher,
    Notifier,
    OutputQueue,
    TranscriptionService,
)
from voicelink.services.settings_store import SettingsStore

logger = structlog.get_logger()


class VoiceClient:
    """Composition root for one voice input pipeline"""

    def __init__(self,
                 engine_factory: EngineFactory,
                 transcriber: TranscriptionService,
                 dispatcher: MessageDispatcher,
                 ai_state: AIStateSink,
                 output_queue: OutputQueue,
                 notifier: Notifier,
                 store: Optional[SettingsStore] = None,
                 scheduler: Optional[Scheduler] = None,
                 interrupt_text: Optional[Callable[[], str]] = None,
                 session_timeout: Optional[float] = None,
                 auto_start_delay: Optional[float] = None,
                 restart_delay: Optional[float] = None):
        self.transcriber = transcriber
        self.store = store or SettingsStore()
        self.scheduler = scheduler or AsyncioScheduler()
        self.state = EngagementState()
        self._signals = ReadinessSnapshot()

        self.controller = SessionLifecycleController(
            transcriber=transcriber,
            dispatcher=dispatcher,
            ai_state=ai_state,
            output_queue=output_queue,
            notifier=notifier,
            scheduler=self.scheduler,
            processing_enabled=lambda: self.state.processing_enabled,
            session_timeout=session_timeout,
            interrupt_text=interrupt_text,
        )
        self.manager = EngagementManager(
            engine_factory=engine_factory,
            controller=self.controller,
            store=self.store,
            notifier=notifier,
            scheduler=self.scheduler,
            readiness=self.readiness,
            state=self.state,
            auto_start_delay=auto_start_delay,
            restart_delay=restart_delay,
        )

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        """
        Connect the settings store, restore persisted state and load the
        transcription backend

        The auto-start check runs after the backend has loaded, since its
        readiness is part of the gate.
        """
        await self.store.connect()
        await self.manager.restore()
        await self._initialize_transcriber()
        self.manager.evaluate_auto_start()
        logger.info("voice_client.opened", transcriber=self.transcriber.identity)

    async def close(self) -> None:
        await self.manager.shutdown()
        await self.store.close()
        logger.info("voice_client.closed")

    def readiness(self) -> ReadinessSnapshot:
        """Current readiness; the backend counts as ready once it reports so"""
        if not self._signals.transcription_ready and self.transcriber.is_initialized:
            return dataclasses.replace(self._signals, transcription_ready=True)
        return self._signals

    def update_readiness(self, **signals: Any) -> ReadinessSnapshot:
        """
        Record changed external signals and re-run the auto-start check

        Accepts any ReadinessSnapshot field: api_key, channel_state,
        is_authenticated, authentication_pending, transcription_ready.
        """
        self._signals = dataclasses.replace(self._signals, **signals)
        logger.debug("voice_client.readiness.updated", **{
            k: v for k, v in signals.items() if k != "api_key"
        })
        self.manager.evaluate_auto_start()
        return self._signals

    async def transcription_backend_changed(self) -> bool:
        return await self.manager.transcription_backend_changed()

    async def use_transcriber(self, transcriber: TranscriptionService) -> bool:
        """
        Switch the transcription backend

        Nothing happens when the new backend has the same identity. Otherwise
        the backend is loaded and a running detector is recreated so its
        output reaches the new backend. Returns True when the backend changed.
        """
        previous = self.transcriber.identity
        if transcriber.identity == previous:
            return False

        self.transcriber = transcriber
        self.controller.transcriber = transcriber
        logger.info("voice_client.transcriber.changed", previous=previous, current=transcriber.identity)

        await self._initialize_transcriber()
        await self.manager.transcription_backend_changed()
        self.manager.evaluate_auto_start()
        return True

    async def _initialize_transcriber(self) -> bool:
        if self.transcriber.is_initialized:
            return True
        try:
            await self.transcriber.initialize()
        except Exception as e:
            # Gate stays closed and reports transcription_ready as missing
            return log_and_return_error(e, default_return=False,
                                        operation="initialize_transcriber",
                                        component="voice_client",
                                        transcriber=self.transcriber.identity)
        return True

    def status(self) -> Dict[str, Any]:
        return self.manager.status()
