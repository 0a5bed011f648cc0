"""
Durable settings store

Provides async key/value persistence for detector thresholds and user
preferences using aiosqlite. Values are stored as JSON text.
"""

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import structlog
from pydantic import ValidationError

from voicelink.core.config import config
from voicelink.core.events import VADSettings

logger = structlog.get_logger()


KEY_VAD_SETTINGS = "vad_settings"
KEY_ENGINE_RUNNING = "engine_running"
KEY_PROCESSING_ENABLED = "processing_enabled"
KEY_AUTO_START_ON_INIT = "auto_start_on_init"


@dataclass
class StoredPreferences:
    """Engagement preferences as last persisted"""
    engine_running: bool = False
    processing_enabled: bool = True
    auto_start_on_init: bool = config.DEFAULT_AUTO_START_ON_INIT


class SettingsStore:
    """
    Async settings store for VOICELINK

    One row per key; writes replace the previous value.
    """

    def __init__(self, db_path: Path = config.SETTINGS_DB_PATH):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Establish database connection and ensure schema"""
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self.db_path))
            self._conn.row_factory = aiosqlite.Row
            await self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at INTEGER NOT NULL
                )
                """
            )
            await self._conn.commit()
            logger.info("settings_store.connected", path=str(self.db_path))

    async def close(self):
        """Close database connection"""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("settings_store.closed")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Raw key/value access

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the decoded value for key, or default when unset"""
        if not self._conn:
            await self.connect()

        cursor = await self._conn.execute(
            "SELECT value FROM settings WHERE key = ?",
            (key,),
        )
        row = await cursor.fetchone()

        if row is None:
            return default

        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            logger.warning("settings_store.corrupt_value", key=key)
            return default

    async def set(self, key: str, value: Any) -> None:
        if not self._conn:
            await self.connect()

        await self._conn.execute(
            """
            INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), int(time.time())),
        )
        await self._conn.commit()

        logger.debug("settings_store.saved", key=key)

    # Typed helpers

    async def load_vad_settings(self) -> VADSettings:
        """
        Load detector thresholds

        Missing or invalid stored values fall back to defaults so a bad
        record never blocks startup.
        """
        raw = await self.get(KEY_VAD_SETTINGS)
        if raw is None:
            return VADSettings()

        try:
            return VADSettings.model_validate(raw)
        except ValidationError as e:
            logger.warning("settings_store.invalid_vad_settings",
                           error_count=e.error_count())
            return VADSettings()

    async def save_vad_settings(self, settings: VADSettings) -> None:
        await self.set(KEY_VAD_SETTINGS, settings.model_dump())

    async def load_preferences(self) -> StoredPreferences:
        defaults = StoredPreferences()
        return StoredPreferences(
            engine_running=bool(await self.get(KEY_ENGINE_RUNNING, defaults.engine_running)),
            processing_enabled=bool(await self.get(KEY_PROCESSING_ENABLED, defaults.processing_enabled)),
            auto_start_on_init=bool(await self.get(KEY_AUTO_START_ON_INIT, defaults.auto_start_on_init)),
        )
