"""
Unit Tests for Config

Testing configuration defaults and validation.
"""

import pytest
from pathlib import Path
from unittest.mock import patch

from voicelink.core.config import Config, config


class TestConfigDefaults:
    """Test Config default values"""

    def test_config_paths_are_path_objects(self):
        assert isinstance(Config.PROJECT_ROOT, Path)
        assert isinstance(Config.DATA_DIR, Path)
        assert isinstance(Config.SETTINGS_DB_PATH, Path)

    def test_timing_defaults(self):
        """Test lifecycle timing constants"""
        assert Config.SESSION_TIMEOUT_MS == 30000
        assert Config.AUTO_START_DELAY_MS == 1500
        assert Config.RESTART_DELAY_MS == 500

    def test_timing_in_seconds(self):
        assert Config.session_timeout_seconds() == 30.0
        assert Config.auto_start_delay_seconds() == 1.5
        assert Config.restart_delay_seconds() == 0.5

    def test_vad_defaults(self):
        assert Config.DEFAULT_POSITIVE_SPEECH_THRESHOLD == 50
        assert Config.DEFAULT_NEGATIVE_SPEECH_THRESHOLD == 35
        assert Config.DEFAULT_REDEMPTION_FRAMES == 35
        assert Config.PRE_SPEECH_PAD_FRAMES == 20

    def test_remote_control_binds_loopback(self):
        assert Config.CONTROL_HOST == "127.0.0.1"
        assert Config.CONTROL_PORT == 3001

    def test_global_instance(self):
        assert isinstance(config, Config)


class TestConfigValidation:
    """Test Config.validate"""

    def test_validate_creates_data_dir(self, tmp_path):
        with patch.object(Config, "SETTINGS_DB_PATH", tmp_path / "data" / "settings.db"):
            assert Config.validate() is True
            assert (tmp_path / "data").is_dir()

    def test_validate_rejects_non_positive_timeout(self, tmp_path):
        with patch.object(Config, "SETTINGS_DB_PATH", tmp_path / "settings.db"), \
                patch.object(Config, "SESSION_TIMEOUT_MS", 0):
            assert Config.validate() is False

    def test_validate_rejects_negative_delay(self, tmp_path):
        with patch.object(Config, "SETTINGS_DB_PATH", tmp_path / "settings.db"), \
                patch.object(Config, "RESTART_DELAY_MS", -1):
            assert Config.validate() is False
