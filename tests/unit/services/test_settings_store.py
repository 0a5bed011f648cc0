"""
Unit Tests for SettingsStore

Testing JSON key/value persistence and typed helpers on a temporary
SQLite database.
"""

import pytest
import time

from voicelink.core.events import VADSettings
from voicelink.services.settings_store import (
    KEY_ENGINE_RUNNING,
    KEY_PROCESSING_ENABLED,
    KEY_VAD_SETTINGS,
    SettingsStore,
)


class TestKeyValueAccess:
    """Test raw get/set"""

    @pytest.mark.asyncio
    async def test_missing_key_returns_default(self, settings_store):
        """Test unset keys fall back to the given default"""
        assert await settings_store.get("unknown") is None
        assert await settings_store.get("unknown", 42) == 42

    @pytest.mark.asyncio
    async def test_set_overwrites_value(self, settings_store):
        """Test writes replace the previous value"""
        await settings_store.set(KEY_PROCESSING_ENABLED, True)
        await settings_store.set(KEY_PROCESSING_ENABLED, False)

        assert await settings_store.get(KEY_PROCESSING_ENABLED) is False

    @pytest.mark.asyncio
    async def test_corrupt_value_returns_default(self, settings_store):
        """Test undecodable rows are treated as unset"""
        await settings_store._conn.execute(
            "INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
            (KEY_ENGINE_RUNNING, "{not json", int(time.time())),
        )
        await settings_store._conn.commit()

        assert await settings_store.get(KEY_ENGINE_RUNNING, False) is False

    @pytest.mark.asyncio
    async def test_values_survive_reconnect(self, tmp_path):
        """Test settings are durable across store instances"""
        db_path = tmp_path / "nested" / "settings.db"

        async with SettingsStore(db_path=db_path) as store:
            await store.set(KEY_ENGINE_RUNNING, True)

        async with SettingsStore(db_path=db_path) as store:
            assert await store.get(KEY_ENGINE_RUNNING) is True


class TestTypedHelpers:
    """Test VAD settings and preference helpers"""

    @pytest.mark.asyncio
    async def test_vad_settings_default_when_unset(self, settings_store):
        settings = await settings_store.load_vad_settings()

        assert settings == VADSettings()
        assert settings.positive_speech_threshold == 50
        assert settings.negative_speech_threshold == 35
        assert settings.redemption_frames == 35

    @pytest.mark.asyncio
    async def test_vad_settings_saved_and_loaded(self, settings_store):
        """Test saved thresholds load back unchanged"""
        saved = VADSettings(positive_speech_threshold=80, negative_speech_threshold=20,
                            redemption_frames=12)
        await settings_store.save_vad_settings(saved)

        assert await settings_store.load_vad_settings() == saved

    @pytest.mark.asyncio
    async def test_invalid_vad_settings_fall_back(self, settings_store):
        """Test out-of-range stored values never block startup"""
        await settings_store.set(KEY_VAD_SETTINGS, {"positive_speech_threshold": 500})

        assert await settings_store.load_vad_settings() == VADSettings()

    @pytest.mark.asyncio
    async def test_preferences_defaults(self, settings_store):
        """Test preferences on a fresh database"""
        preferences = await settings_store.load_preferences()

        assert preferences.engine_running is False
        assert preferences.processing_enabled is True

    @pytest.mark.asyncio
    async def test_preferences_reflect_stored_values(self, settings_store):
        await settings_store.set(KEY_ENGINE_RUNNING, True)
        await settings_store.set(KEY_PROCESSING_ENABLED, False)

        preferences = await settings_store.load_preferences()

        assert preferences.engine_running is True
        assert preferences.processing_enabled is False
