"""
Detector events and engine configuration

The detector reports everything through a single callback receiving one of
four event types. Controllers match on the type instead of registering
separate onStart/onEnd/onMisfire hooks.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Union

import numpy as np
from pydantic import BaseModel, Field

from voicelink.core.config import config


@dataclass(frozen=True)
class SpeechStart:
    """Detector crossed the positive threshold"""


@dataclass(frozen=True)
class SpeechFrame:
    """Per-frame speech probability in 0..1"""
    probability: float


@dataclass(frozen=True)
class SpeechEnd:
    """Utterance finished; audio is 16 kHz mono float32 PCM"""
    audio: np.ndarray = field(repr=False)


@dataclass(frozen=True)
class SpeechMisfire:
    """Speech start was too short to count as an utterance"""


DetectorEvent = Union[SpeechStart, SpeechFrame, SpeechEnd, SpeechMisfire]

EventCallback = Callable[[DetectorEvent], object]


class AIState(str, Enum):
    """Activity state of the remote conversational backend as shown to the user"""
    IDLE = "idle"
    LISTENING = "listening"
    THINKING_SPEAKING = "thinking-speaking"
    INTERRUPTED = "interrupted"


class TranscriptionStatus(str, Enum):
    """Outcome of the most recent utterance's transcription"""
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class VADSettings(BaseModel):
    """User-tunable detector thresholds (percent) and redemption frames"""

    positive_speech_threshold: int = Field(
        default=config.DEFAULT_POSITIVE_SPEECH_THRESHOLD, ge=0, le=100
    )
    negative_speech_threshold: int = Field(
        default=config.DEFAULT_NEGATIVE_SPEECH_THRESHOLD, ge=0, le=100
    )
    redemption_frames: int = Field(default=config.DEFAULT_REDEMPTION_FRAMES, ge=0)

    model_config = {"frozen": True}


@dataclass(frozen=True)
class EngineConfig:
    """Construction options handed to the detector factory"""
    positive_speech_threshold: float
    negative_speech_threshold: float
    redemption_frames: int
    pre_speech_pad_frames: int = config.PRE_SPEECH_PAD_FRAMES

    @classmethod
    def from_settings(cls, settings: VADSettings) -> "EngineConfig":
        return cls(
            positive_speech_threshold=settings.positive_speech_threshold / 100,
            negative_speech_threshold=settings.negative_speech_threshold / 100,
            redemption_frames=settings.redemption_frames,
        )
