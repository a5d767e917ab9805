"""SQLite key-value store for the API key, selected network and preferences."""

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import ValidationError

from ..core.config import get_settings, is_valid_network
from ..core.errors import PersistenceError
from ..core.types import AppSettings

logger = logging.getLogger(__name__)

API_KEY = "api_key"
NETWORK_KEY = "network"
APP_SETTINGS_KEY = "app_settings"


def default_app_settings() -> AppSettings:
    """Factory defaults, with the refresh interval taken from the environment."""
    return AppSettings(refresh_interval=get_settings().default_refresh_interval_ms)


class SettingsStore:
    """Key-value persistence backed by a ``settings`` table."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = Path(db_path or get_settings().database_path)
        self._initialized = False

    async def init_db(self) -> None:
        """Initialize the database schema."""
        if self._initialized:
            return

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS settings (
                        key TEXT PRIMARY KEY,
                        value_json TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)
                await db.commit()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open settings database {self.db_path}: {e}") from e
        self._initialized = True

    async def get(self, key: str, default: Any = None) -> Any:
        await self.init_db()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    "SELECT value_json FROM settings WHERE key = ?", (key,)
                ) as cursor:
                    row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot read setting {key}: {e}") from e

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning(f"Ignoring corrupt value for setting {key}")
            return default

    async def set(self, key: str, value: Any) -> None:
        await self.init_db()
        now = datetime.now().isoformat()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    INSERT INTO settings (key, value_json, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = excluded.updated_at
                """, (key, json.dumps(value), now))
                await db.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot write setting {key}: {e}") from e

    async def set_many(self, values: dict[str, Any]) -> None:
        """Upsert several keys; either all of them are written or none."""
        await self.init_db()
        now = datetime.now().isoformat()
        rows = [(key, json.dumps(value), now) for key, value in values.items()]
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.executemany("""
                    INSERT INTO settings (key, value_json, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = excluded.updated_at
                """, rows)
                await db.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot write settings {', '.join(values)}: {e}") from e

    async def delete(self, key: str) -> bool:
        await self.init_db()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute("DELETE FROM settings WHERE key = ?", (key,))
                await db.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot delete setting {key}: {e}") from e

    async def get_api_key(self) -> str:
        """Stored key, then the BEACONCHAIN_API_KEY environment variable, then free tier."""
        return await self.get(API_KEY) or get_settings().beaconchain_api_key or ""

    async def set_api_key(self, api_key: str) -> None:
        await self.set(API_KEY, api_key.strip())

    async def get_network(self) -> str:
        network = await self.get(NETWORK_KEY)
        if isinstance(network, str) and is_valid_network(network):
            return network
        return get_settings().default_network

    async def set_network(self, network: str) -> bool:
        if not is_valid_network(network):
            return False
        await self.set(NETWORK_KEY, network)
        return True

    async def load_app_settings(self) -> AppSettings:
        """Stored preferences laid over the defaults; the API key lives under its own key."""
        raw = await self.get(APP_SETTINGS_KEY)
        defaults = default_app_settings()
        if not isinstance(raw, dict):
            return defaults
        merged = {**defaults.model_dump(exclude={"api_key"}), **raw}
        merged.pop("api_key", None)
        try:
            return AppSettings.model_validate(merged)
        except ValidationError as e:
            logger.warning(f"Stored settings are invalid, using defaults: {e}")
            return defaults

    async def save_app_settings(self, app_settings: AppSettings) -> None:
        """Write the API key and the preferences blob in one transaction."""
        await self.set_many({
            API_KEY: app_settings.api_key.strip(),
            APP_SETTINGS_KEY: app_settings.model_dump(exclude={"api_key"}),
        })
