"""
Unit Tests for WhisperTranscriptionService

WhisperModel is patched out, so no model weights are downloaded.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import numpy as np

from voicelink.core.config import config
from voicelink.core.exceptions import TranscriptionError
from voicelink.services.stt import get_transcription_service, reset_transcription_service
from voicelink.services.stt_local import WhisperTranscriptionService


def fake_model(*texts):
    model = MagicMock()
    segments = [SimpleNamespace(text=t) for t in texts]
    model.transcribe.return_value = (iter(segments), SimpleNamespace(language="en", duration=1.0))
    return model


class TestWhisperTranscriptionService:
    """Test transcription with a patched model"""

    def test_model_not_loaded_on_init(self):
        with patch("voicelink.services.stt_local.WhisperModel") as model_cls:
            service = WhisperTranscriptionService(model_size="tiny")

            model_cls.assert_not_called()
            assert service.is_initialized is False
            assert service.identity == "local:tiny:cpu:int8"

    @pytest.mark.asyncio
    async def test_initialize_loads_model(self):
        with patch("voicelink.services.stt_local.WhisperModel", return_value=fake_model()) as model_cls:
            service = WhisperTranscriptionService(model_size="tiny")
            await service.initialize()

            model_cls.assert_called_once_with("tiny", device="cpu", compute_type="int8")
            assert service.is_initialized

    @pytest.mark.asyncio
    async def test_transcribe_joins_segments(self, sample_audio):
        """Test segment texts are stripped and joined"""
        model = fake_model(" Hello", " world. ")
        with patch("voicelink.services.stt_local.WhisperModel", return_value=model):
            service = WhisperTranscriptionService(language="en")

            text = await service.transcribe(sample_audio)

        assert text == "Hello world."
        args, kwargs = model.transcribe.call_args
        assert kwargs["language"] == "en"
        assert kwargs["vad_filter"] is False

    @pytest.mark.asyncio
    async def test_empty_audio_rejected(self):
        service = WhisperTranscriptionService()

        with pytest.raises(TranscriptionError):
            await service.transcribe(np.array([], dtype=np.float32))

    @pytest.mark.asyncio
    async def test_model_failure_wrapped(self, sample_audio):
        """Test backend errors surface as TranscriptionError"""
        model = MagicMock()
        model.transcribe.side_effect = RuntimeError("CUDA out of memory")
        with patch("voicelink.services.stt_local.WhisperModel", return_value=model):
            service = WhisperTranscriptionService()

            with pytest.raises(TranscriptionError) as exc_info:
                await service.transcribe(sample_audio)

        assert "CUDA out of memory" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_unload_model(self):
        with patch("voicelink.services.stt_local.WhisperModel", return_value=fake_model()):
            service = WhisperTranscriptionService()
            await service.initialize()

            service.unload_model()

        assert service.is_initialized is False


class TestTranscriptionFactory:
    """Test provider selection"""

    def setup_method(self):
        reset_transcription_service()

    def teardown_method(self):
        reset_transcription_service()

    def test_local_provider_is_singleton(self):
        with patch.object(config, "STT_PROVIDER", "local"):
            first = get_transcription_service()
            second = get_transcription_service()

        assert isinstance(first, WhisperTranscriptionService)
        assert first is second

    def test_unknown_provider_raises(self):
        with patch.object(config, "STT_PROVIDER", "cloud"):
            with pytest.raises(ValueError, match="Unknown STT provider"):
                get_transcription_service()
