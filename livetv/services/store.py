"""
SQLite-backed durable key-value store.
Holds stored playlists, user channel edits, the admin config and users.
"""
import aiosqlite
import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from livetv.config import get_settings
from livetv.models.admin import AdminConfig

logger = logging.getLogger(__name__)

ADMIN_CONFIG_KEY = "admin_config"


def m3u_content_key(source_key: str) -> str:
    """Key of a playlist stored directly in the store."""
    return f"live_m3u_{source_key}"


def channel_overlay_key(source_key: str) -> str:
    """Key of the user-edited channel list for a live source."""
    return f"live_channels_{source_key}"


class KVStore:
    """Async SQLite key-value store."""

    def __init__(self, db_path: Optional[str] = None):
        settings = get_settings()
        self.db_path = db_path or settings.database_path
        self._ensure_directory()

    def _ensure_directory(self):
        """Create data directory if it doesn't exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    async def initialize(self):
        """Create database tables if they don't exist."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    username TEXT PRIMARY KEY,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            await db.commit()

    async def get(self, key: str) -> Optional[str]:
        """Get a stored value."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT value FROM kv WHERE key = ?", (key,))
            row = await cursor.fetchone()
            return row[0] if row else None

    async def set(self, key: str, value: str):
        """Store a value, replacing any previous one."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """INSERT OR REPLACE INTO kv (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)""",
                (key, value)
            )
            await db.commit()

    async def delete(self, key: str):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM kv WHERE key = ?", (key,))
            await db.commit()

    async def list_keys(self, prefix: str = "") -> list[str]:
        """List keys starting with prefix."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix)
            )
            rows = await cursor.fetchall()
            return [r[0] for r in rows]

    # User methods
    async def add_user(self, username: str):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("INSERT OR IGNORE INTO users (username) VALUES (?)", (username,))
            await db.commit()

    async def get_all_users(self) -> list[str]:
        """Get all registered usernames in registration order."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("SELECT username FROM users ORDER BY created_at, rowid")
            rows = await cursor.fetchall()
            return [r[0] for r in rows]

    # Admin config methods
    async def get_admin_config(self) -> Optional[AdminConfig]:
        """Load the persisted admin config, None if absent or unreadable."""
        raw = await self.get(ADMIN_CONFIG_KEY)
        if raw is None:
            return None
        try:
            return AdminConfig.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Stored admin config is invalid: {e}")
            return None

    async def save_admin_config(self, config: AdminConfig):
        await self.set(ADMIN_CONFIG_KEY, config.model_dump_json(by_alias=True))

    # Live source helpers
    async def get_channel_overlay(self, source_key: str) -> Optional[list]:
        """Return the decoded user channel list, None if absent or not a JSON array."""
        raw = await self.get(channel_overlay_key(source_key))
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to decode saved channels for {source_key}: {e}")
            return None
        if not isinstance(data, list):
            logger.error(f"Saved channels for {source_key} are not a list")
            return None
        return data


# Singleton instance
_store: Optional[KVStore] = None


async def get_store() -> KVStore:
    """Get or create store singleton."""
    global _store
    if _store is None:
        _store = KVStore()
        await _store.initialize()
    return _store
