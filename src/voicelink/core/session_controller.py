"""
Session Lifecycle Controller - utterance sessions from detector events

Turns the detector's start/frame/end/misfire stream into at most one
active utterance session, bounds it with a timeout, transcribes the
captured audio and forwards the text to the conversational backend.

State machine:
    NO_SESSION --start--> ACTIVE --end | misfire | timeout | reset--> NO_SESSION

Async completions (transcription, dispatch) are checked twice:
- generation: bumped by reset() on engine teardown; a result from an older
  generation is discarded entirely
- attempt: bumped by every new session; a result from an older attempt is
  still delivered, but AI state, status and last transcription belong to
  the newer session and are left alone
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set

import numpy as np
import structlog

from voicelink.core.config import config
from voicelink.core.error_handling import ErrorHandler, get_error_handler
from voicelink.core.events import (
    AIState,
    DetectorEvent,
    SpeechEnd,
    SpeechFrame,
    SpeechMisfire,
    SpeechStart,
    TranscriptionStatus,
)
from voicelink.core.exceptions import DispatchError, TranscriptionError, VoiceLinkError
from voicelink.core.timers import Scheduler, TimerHandle
from voicelink.services.protocols import (
    AIStateSink,
    MessageDispatcher,
    Notifier,
    OutputQueue,
    TranscriptionService,
)

logger = structlog.get_logger()


class SessionState(Enum):
    """Controller states"""
    NO_SESSION = "no_session"
    ACTIVE = "active"


@dataclass
class Session:
    """One utterance being captured"""
    session_id: str
    attempt: int
    started_at: float
    timeout_handle: TimerHandle


class SessionLifecycleController:
    """
    Owns the single utterance session

    Callers feed detector events through dispatch() (sync, usable as the
    engine callback) or handle() (awaits the whole end-of-speech chain).
    """

    def __init__(self,
                 transcriber: TranscriptionService,
                 dispatcher: MessageDispatcher,
                 ai_state: AIStateSink,
                 output_queue: OutputQueue,
                 notifier: Notifier,
                 scheduler: Scheduler,
                 processing_enabled: Callable[[], bool],
                 session_timeout: Optional[float] = None,
                 interrupt_text: Optional[Callable[[], str]] = None,
                 error_handler: Optional[ErrorHandler] = None):
        self.transcriber = transcriber
        self.dispatcher = dispatcher
        self.ai_state = ai_state
        self.output_queue = output_queue
        self.notifier = notifier
        self.scheduler = scheduler
        self._processing_enabled = processing_enabled
        self.session_timeout = (
            session_timeout if session_timeout is not None
            else config.session_timeout_seconds()
        )
        self._interrupt_text = interrupt_text or (lambda: "")
        self.error_handler = error_handler or get_error_handler()

        self._state = SessionState.NO_SESSION
        self._session: Optional[Session] = None
        self._attempt = 0
        self._generation = 0
        self._tasks: Set[asyncio.Task] = set()

        self.peak_probability = 0.0
        self.transcription_status = TranscriptionStatus.IDLE
        self.last_transcription = ""

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def has_active_session(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def current_attempt(self) -> int:
        return self._attempt

    def snapshot(self) -> Dict[str, Any]:
        session = self._session
        return {
            "state": self._state.value,
            "session_id": session.session_id if session else None,
            "session_age_seconds": (
                round(self.scheduler.now() - session.started_at, 3) if session else None
            ),
            "attempt": self._attempt,
            "generation": self._generation,
            "peak_probability": self.peak_probability,
            "transcription_status": self.transcription_status.value,
            "last_transcription": self.last_transcription,
            "pending_tasks": len(self._tasks),
        }

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def dispatch(self, event: DetectorEvent) -> Optional[asyncio.Task]:
        """
        Route one detector event

        Returns the task processing an end-of-speech event, None otherwise.
        """
        if isinstance(event, SpeechFrame):
            self._on_frame(event.probability)
        elif isinstance(event, SpeechStart):
            self._on_start()
        elif isinstance(event, SpeechEnd):
            return self._on_end(event.audio)
        elif isinstance(event, SpeechMisfire):
            self._on_misfire()
        else:
            raise TypeError(f"Unknown detector event: {event!r}")
        return None

    async def handle(self, event: DetectorEvent) -> None:
        """Route one event and wait for any work it started"""
        task = self.dispatch(event)
        if task is not None:
            await task

    def reset(self) -> None:
        """
        Forced cleanup used when the engine is torn down

        Equivalent to a misfire, and additionally invalidates any in-flight
        transcription or dispatch so its result is discarded.
        """
        self._generation += 1
        self._cleanup("reset")

    async def wait_idle(self) -> None:
        """Wait for every background task (processing, interrupts) to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_start(self) -> None:
        if not self._processing_enabled():
            logger.debug("session_controller.start.ignored", reason="processing_disabled")
            return

        if self._state is SessionState.ACTIVE:
            # Detector must end or misfire before starting again
            logger.error("session_controller.start.duplicate",
                         session_id=self._session.session_id,
                         attempt=self._attempt)
            return

        if self.ai_state.state is AIState.THINKING_SPEAKING:
            self._interrupt()

        session = self._open_session()

        self.ai_state.set_state(AIState.LISTENING)
        self._set_status(TranscriptionStatus.IDLE)

        logger.info("session_controller.session.started",
                    session_id=session.session_id,
                    attempt=session.attempt,
                    timeout_seconds=self.session_timeout)

    def _on_frame(self, probability: float) -> None:
        if probability > self.peak_probability:
            self.peak_probability = probability

    def _on_end(self, audio: np.ndarray) -> Optional[asyncio.Task]:
        if not self._processing_enabled() or self._state is not SessionState.ACTIVE:
            logger.debug("session_controller.end.ignored",
                         processing_enabled=self._processing_enabled(),
                         state=self._state.value)
            return None

        session = self._close_session()
        self.peak_probability = 0.0
        # A previous reply may still be queued for playback
        self.output_queue.clear()

        logger.info("session_controller.session.ended",
                    session_id=session.session_id,
                    attempt=session.attempt,
                    duration_seconds=round(self.scheduler.now() - session.started_at, 3),
                    samples=len(audio))

        self._set_status(TranscriptionStatus.PROCESSING)
        return self._spawn(self._process_utterance(session, audio))

    async def _process_utterance(self, session: Session, audio: np.ndarray) -> None:
        generation = self._generation
        attempt = session.attempt

        try:
            text = await self.transcriber.transcribe(audio)
        except Exception as e:
            if self._torn_down(generation, "transcribe"):
                return
            if self._owns_shared_state(attempt):
                self._set_status(TranscriptionStatus.ERROR)
                self.ai_state.set_state(AIState.IDLE)
            self._report(self._as(TranscriptionError, e), "transcribe", session.session_id)
            return

        if self._torn_down(generation, "transcribe"):
            return

        text = (text or "").strip()
        if not text:
            logger.info("session_controller.transcription.empty", session_id=session.session_id)
            if self._owns_shared_state(attempt):
                self._set_status(TranscriptionStatus.IDLE)
                self.ai_state.set_state(AIState.IDLE)
            return

        if self._owns_shared_state(attempt):
            self.last_transcription = text
            self._set_status(TranscriptionStatus.COMPLETE)

        try:
            await self.dispatcher.send({"type": "text-input", "text": text}, priority="high")
        except Exception as e:
            if self._torn_down(generation, "dispatch"):
                return
            if self._owns_shared_state(attempt):
                self.ai_state.set_state(AIState.IDLE)
            self._report(self._as(DispatchError, e), "dispatch", session.session_id)
            return

        logger.info("session_controller.transcription.sent",
                    session_id=session.session_id,
                    characters=len(text))

        # A newer session owns the AI state; the reply must not cut it short
        if self._torn_down(generation, "dispatch") or not self._owns_shared_state(attempt):
            return

        self.ai_state.set_state(AIState.THINKING_SPEAKING)

    def _on_misfire(self) -> None:
        self._cleanup("misfire")

    def _on_timeout(self, attempt: int) -> None:
        session = self._session
        if self._state is not SessionState.ACTIVE or session is None or session.attempt != attempt:
            return

        logger.warning("session_controller.session.timeout",
                       session_id=session.session_id,
                       attempt=attempt,
                       timeout_seconds=self.session_timeout)
        self._cleanup("timeout")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _open_session(self) -> Session:
        assert self._state is SessionState.NO_SESSION, "session already active"

        self._attempt += 1
        attempt = self._attempt
        handle = self.scheduler.call_later(
            self.session_timeout, lambda: self._on_timeout(attempt)
        )
        self._session = Session(
            session_id=str(uuid.uuid4())[:8],
            attempt=attempt,
            started_at=self.scheduler.now(),
            timeout_handle=handle,
        )
        self._state = SessionState.ACTIVE
        return self._session

    def _close_session(self) -> Optional[Session]:
        session = self._session
        if session is not None:
            session.timeout_handle.cancel()
        self._session = None
        self._state = SessionState.NO_SESSION
        return session

    def _cleanup(self, reason: str) -> None:
        session = self._close_session()
        self.peak_probability = 0.0

        if self.ai_state.state in (AIState.INTERRUPTED, AIState.LISTENING):
            self.ai_state.set_state(AIState.IDLE)

        self._set_status(TranscriptionStatus.IDLE)

        logger.info("session_controller.session.cleared",
                    reason=reason,
                    session_id=session.session_id if session else None,
                    attempt=self._attempt)

    def _interrupt(self) -> None:
        logger.info("session_controller.interrupt", attempt=self._attempt)
        self._spawn(self._send_interrupt(self._interrupt_text()))
        self.ai_state.set_state(AIState.INTERRUPTED)
        self.output_queue.clear()

    async def _send_interrupt(self, text: str) -> None:
        try:
            await self.dispatcher.send({"type": "interrupt-signal", "text": text})
        except Exception as e:
            # Fire-and-forget: the new session proceeds regardless
            logger.warning("session_controller.interrupt.failed",
                           error=str(e),
                           error_type=type(e).__name__)

    def _torn_down(self, generation: int, stage: str) -> bool:
        if generation == self._generation:
            return False
        logger.info("session_controller.result.stale",
                    stage=stage,
                    generation=generation,
                    current_generation=self._generation)
        return True

    def _owns_shared_state(self, attempt: int) -> bool:
        """False once a newer session has started; its state must not be clobbered"""
        if attempt == self._attempt:
            return True
        logger.debug("session_controller.result.superseded",
                     attempt=attempt,
                     current_attempt=self._attempt)
        return False

    def _set_status(self, status: TranscriptionStatus) -> None:
        self.transcription_status = status

    @staticmethod
    def _as(error_type: type, error: Exception) -> VoiceLinkError:
        if isinstance(error, error_type):
            return error
        wrapped = error_type(str(error) or type(error).__name__)
        wrapped.__cause__ = error
        return wrapped

    def _report(self, error: VoiceLinkError, operation: str, session_id: str) -> None:
        context = self.error_handler.create_context(
            error,
            operation=operation,
            component="session_controller",
            session_id=session_id,
        )
        self.error_handler.handle_error(context)
        self.notifier.notify(error.title, str(error), level="error", duration_ms=3000)

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("session_controller.task.failed",
                         error=str(task.exception()),
                         error_type=type(task.exception()).__name__)
