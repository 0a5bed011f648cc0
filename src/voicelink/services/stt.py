"""
Transcription Service Factory

Returns the transcription backend selected by VOICELINK_STT_PROVIDER.
Callers only see the TranscriptionService protocol, so adding a provider
requires no change in the session subsystem.
"""
import structlog

from voicelink.core.config import config
from voicelink.services.protocols import TranscriptionService

logger = structlog.get_logger()

# Singleton instance
_transcription_service: TranscriptionService | None = None


def get_transcription_service() -> TranscriptionService:
    """
    Get transcription service instance (singleton)

    Supported providers:
    - local: Whisper (faster-whisper) on CPU

    Raises:
        ValueError: Unknown provider
    """
    global _transcription_service

    if _transcription_service is not None:
        return _transcription_service

    provider = config.STT_PROVIDER.lower()

    if provider == "local":
        from voicelink.services.stt_local import WhisperTranscriptionService
        logger.info("stt.factory.init",
                    provider="local",
                    model=config.WHISPER_MODEL_SIZE,
                    device=config.WHISPER_DEVICE)
        _transcription_service = WhisperTranscriptionService(
            model_size=config.WHISPER_MODEL_SIZE,
            device=config.WHISPER_DEVICE,
            compute_type=config.WHISPER_COMPUTE_TYPE,
            language=config.WHISPER_LANGUAGE,
        )
    else:
        raise ValueError(
            f"Unknown STT provider: '{provider}'\n"
            f"Supported providers: local\n"
            f"Set VOICELINK_STT_PROVIDER environment variable"
        )

    logger.info("stt.factory.ready", provider=provider)
    return _transcription_service


def reset_transcription_service() -> None:
    """Drop the cached instance so the next call re-reads configuration"""
    global _transcription_service
    _transcription_service = None
