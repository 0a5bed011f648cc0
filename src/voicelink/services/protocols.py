"""
Collaborator protocols (interfaces)

Contracts for everything the session subsystem talks to but does not own:
the detector, transcription backend, message channel, AI-state display,
audio output queue and user notifications.

Implementations are supplied at construction time; nothing here is looked
up from globals.
"""
from typing import Any, Optional, Protocol

import numpy as np

from voicelink.core.events import AIState, EngineConfig, EventCallback


class DetectionEngine(Protocol):
    """Handle to a constructed speech detector"""

    def start(self) -> None:
        """Begin (or resume) emitting events"""
        ...

    def pause(self) -> None:
        """Stop emitting events; the instance can be started again"""
        ...

    def destroy(self) -> None:
        """Release the device and model; the instance is unusable afterwards"""
        ...


class EngineFactory(Protocol):
    """
    Builds detection engines

    Construction may load model assets and open the microphone, so it is
    async and can be slow. Device, permission or asset failures should
    raise; the caller wraps them in EngineCreationError.
    """

    async def create(self, config: EngineConfig, on_event: EventCallback) -> DetectionEngine:
        ...


class TranscriptionService(Protocol):
    """
    Speech-to-Text backend

    Implementations:
    - WhisperTranscriptionService: Local faster-whisper (CPU)
    """

    @property
    def identity(self) -> str:
        """Changes whenever the provider or its model/config changes"""
        ...

    @property
    def is_initialized(self) -> bool:
        """True once the backend can accept audio"""
        ...

    async def initialize(self) -> None:
        """Load models; is_initialized is True afterwards"""
        ...

    async def transcribe(self, audio: np.ndarray) -> str:
        """
        Transcribe a float32 PCM buffer (16 kHz mono) to text

        Raises:
            TranscriptionError: Backend failed
        """
        ...


class MessageDispatcher(Protocol):
    """Outbound channel to the remote conversational backend"""

    async def send(self, message: dict[str, Any], priority: str = "normal") -> None:
        """
        Deliver one message

        Message shapes:
            {"type": "text-input", "text": str}
            {"type": "interrupt-signal", "text": str}

        Raises:
            DispatchError: Channel not open or not authenticated
        """
        ...


class AIStateSink(Protocol):
    """Shared display of what the assistant is doing"""

    @property
    def state(self) -> AIState:
        ...

    def set_state(self, state: AIState) -> None:
        ...


class OutputQueue(Protocol):
    """Queue of pending synthesized audio playback tasks"""

    def clear(self) -> None:
        ...


class Notifier(Protocol):
    """User-visible notifications (toasts)"""

    def notify(self, title: str, description: str, level: str = "info",
               duration_ms: Optional[int] = None) -> None:
        ...
