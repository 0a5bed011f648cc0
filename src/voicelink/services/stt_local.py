"""
Speech-to-Text service using faster-whisper (Local Provider)

Transcribes in-memory float32 PCM buffers captured by the detector.
Uses CPU inference by default; decoding runs in the default executor so
the event loop keeps servicing detector callbacks.

Implements: TranscriptionService protocol (see protocols.py)
"""

import asyncio
from typing import Optional

import numpy as np
import structlog
from faster_whisper import WhisperModel

from voicelink.core.config import config
from voicelink.core.exceptions import TranscriptionError
from voicelink.core.logging_config import PerformanceLogger

logger = structlog.get_logger()

SAMPLE_RATE = 16000


class WhisperTranscriptionService:
    """
    Speech-to-Text backend powered by faster-whisper

    Features:
    - Lazy model loading (or eager via initialize())
    - Auto language detection unless a language is configured
    - Async API that never blocks the loop
    """

    provider = "local"

    def __init__(
        self,
        model_size: str = "base",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = None,
        beam_size: int = 5,
    ):
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self._model: Optional[WhisperModel] = None

        logger.info(
            "stt.init",
            model_size=model_size,
            device=device,
            compute_type=compute_type
        )

    @property
    def identity(self) -> str:
        """Changes whenever the backend or its model changes"""
        return f"{self.provider}:{self.model_size}:{self.device}:{self.compute_type}"

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    def _load_model(self):
        """Lazy load Whisper model (first call only)"""
        if self._model is None:
            logger.info("stt.loading_model", model_size=self.model_size)

            self._model = WhisperModel(
                self.model_size,
                device=self.device,
                compute_type=self.compute_type
            )

            logger.info("stt.model_loaded", model_size=self.model_size)

    async def initialize(self) -> None:
        """Load the model off the event loop"""
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._load_model)

    def _run(self, audio: np.ndarray) -> str:
        segments, info = self._model.transcribe(
            audio,
            language=self.language,
            beam_size=self.beam_size,
            vad_filter=False,  # detector already trimmed silence
        )
        text = " ".join(seg.text.strip() for seg in segments)
        logger.debug("stt.transcribe_info",
                     language=info.language,
                     duration_sec=info.duration)
        return text.strip()

    async def transcribe(self, audio: np.ndarray) -> str:
        """
        Transcribe a 16 kHz mono float32 buffer

        Raises:
            TranscriptionError: Empty audio or decoding failed
        """
        audio = np.asarray(audio, dtype=np.float32)
        if audio.size == 0:
            raise TranscriptionError("No audio captured")

        loop = asyncio.get_running_loop()

        try:
            with PerformanceLogger(logger, "stt.transcribe",
                                   audio_seconds=round(audio.size / SAMPLE_RATE, 2)):
                if self._model is None:
                    await loop.run_in_executor(None, self._load_model)
                text = await loop.run_in_executor(None, self._run, audio)
        except Exception as e:
            logger.error("stt.transcribe_failed", error=str(e))
            raise TranscriptionError(f"Transcription failed: {e}") from e

        logger.info("stt.transcribe_complete", text_length=len(text))
        return text

    def unload_model(self):
        """Unload model to free memory"""
        if self._model is not None:
            logger.info("stt.unloading_model")
            self._model = None
