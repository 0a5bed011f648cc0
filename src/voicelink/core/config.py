"""
Configuration management for VOICELINK

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from typing import Optional


class Config:
    """Application configuration"""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
    BASE_DIR = PROJECT_ROOT
    DATA_DIR = Path(os.getenv("VOICELINK_DATA_DIR", str(BASE_DIR / "data")))

    # Settings store (durable preferences)
    SETTINGS_DB_PATH = Path(os.getenv("VOICELINK_SETTINGS_DB", str(DATA_DIR / "settings.db")))

    # Remote control server - bound to loopback only
    CONTROL_HOST: str = os.getenv("VOICELINK_CONTROL_HOST", "127.0.0.1")
    CONTROL_PORT: int = int(os.getenv("VOICELINK_CONTROL_PORT", "3001"))

    # ============================================================
    # Session lifecycle timing
    # ============================================================

    # Upper bound for a single utterance; detector must end/misfire before this
    SESSION_TIMEOUT_MS: int = int(os.getenv("VOICELINK_SESSION_TIMEOUT_MS", "30000"))

    # Settle delay before the one-shot auto-start check
    AUTO_START_DELAY_MS: int = int(os.getenv("VOICELINK_AUTO_START_DELAY_MS", "1500"))

    # Gap between teardown and recreate when settings or provider change
    RESTART_DELAY_MS: int = int(os.getenv("VOICELINK_RESTART_DELAY_MS", "500"))

    # ============================================================
    # Default VAD settings (percent thresholds, frame counts)
    # ============================================================
    DEFAULT_POSITIVE_SPEECH_THRESHOLD: int = 50
    DEFAULT_NEGATIVE_SPEECH_THRESHOLD: int = 35
    DEFAULT_REDEMPTION_FRAMES: int = 35
    PRE_SPEECH_PAD_FRAMES: int = 20

    DEFAULT_AUTO_START_ON_INIT: bool = os.getenv("VOICELINK_AUTO_START", "true").lower() == "true"

    # ============================================================
    # Transcription provider
    # ============================================================

    # Supported STT providers: local (faster-whisper)
    STT_PROVIDER: str = os.getenv("VOICELINK_STT_PROVIDER", "local")

    # Whisper STT (Local)
    WHISPER_MODEL_SIZE: str = os.getenv("VOICELINK_WHISPER_MODEL", "base")
    WHISPER_DEVICE: str = os.getenv("VOICELINK_WHISPER_DEVICE", "cpu")
    WHISPER_COMPUTE_TYPE: str = os.getenv("VOICELINK_WHISPER_COMPUTE", "int8")
    WHISPER_LANGUAGE: Optional[str] = os.getenv("VOICELINK_WHISPER_LANGUAGE") or None

    # Logging
    LOG_LEVEL: str = os.getenv("VOICELINK_LOG_LEVEL", "INFO")

    @classmethod
    def session_timeout_seconds(cls) -> float:
        return cls.SESSION_TIMEOUT_MS / 1000.0

    @classmethod
    def auto_start_delay_seconds(cls) -> float:
        return cls.AUTO_START_DELAY_MS / 1000.0

    @classmethod
    def restart_delay_seconds(cls) -> float:
        return cls.RESTART_DELAY_MS / 1000.0

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration and create necessary directories"""
        try:
            cls.SETTINGS_DB_PATH.parent.mkdir(parents=True, exist_ok=True)

            if cls.SESSION_TIMEOUT_MS <= 0:
                raise ValueError("VOICELINK_SESSION_TIMEOUT_MS must be positive")
            if cls.AUTO_START_DELAY_MS < 0 or cls.RESTART_DELAY_MS < 0:
                raise ValueError("Auto-start and restart delays must not be negative")

            return True
        except Exception as e:
            print(f"[FAIL] Configuration validation failed: {e}")
            return False


# Global config instance
config = Config()
