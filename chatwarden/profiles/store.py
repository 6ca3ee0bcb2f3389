"""Durable user profiles (XP, level, title).

The pipeline only needs get/upsert; `award_xp` builds on them. The SQLite
store keeps one connection per thread in WAL mode and runs queries in a
worker thread so the event loop never blocks on disk.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from loguru import logger

from chatwarden.profiles.progression import level_for_xp, title_for_level


class ProfileStoreError(Exception):
    """The profile store could not be read or written."""


@dataclass
class Profile:
    actor_id: str
    xp: int = 0
    level: int = 1
    title: str = title_for_level(1)
    updated_at: str = ""


@dataclass
class XPAward:
    profile: Profile
    previous_level: int

    @property
    def leveled_up(self) -> bool:
        return self.profile.level > self.previous_level


class ProfileStore(ABC):
    """Abstract key-value profile store."""

    @abstractmethod
    async def get_profile(self, actor_id: str) -> Profile | None:
        """Return the profile or None if the actor has none yet."""

    @abstractmethod
    async def upsert_profile(self, actor_id: str, patch: dict[str, Any]) -> Profile:
        """Create or update fields of a profile. Returns the stored profile."""

    async def award_xp(self, actor_id: str, points: int) -> XPAward:
        """Add points, recompute level and title, and store the result.

        Callers serialize per actor; this is read-modify-write.
        """
        current = await self.get_profile(actor_id) or Profile(actor_id)
        xp = max(0, current.xp + points)
        level = level_for_xp(xp)
        updated = await self.upsert_profile(actor_id, {
            "xp": xp,
            "level": level,
            "title": title_for_level(level),
        })
        return XPAward(updated, current.level)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS profiles (
    actor_id    TEXT PRIMARY KEY,
    xp          INTEGER NOT NULL DEFAULT 0,
    level       INTEGER NOT NULL DEFAULT 1,
    title       TEXT NOT NULL DEFAULT '',
    updated_at  TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_profiles_xp ON profiles(xp);
"""

_COLUMNS = ("xp", "level", "title")


class SqliteProfileStore(ProfileStore):
    """SQLite-backed profile store."""

    def __init__(self, db_path: Path | str) -> None:
        path = Path(db_path).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = str(path)
        self._local = threading.local()
        try:
            self._init_db()
        except sqlite3.Error as e:
            raise ProfileStoreError(f"cannot open profile db {self._db_path}: {e}") from e

    def _get_conn(self) -> sqlite3.Connection:
        """Get a thread-local connection."""
        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(self._db_path)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
            self._local.conn = conn
        return self._local.conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        conn = self._get_conn()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def _init_db(self) -> None:
        with self._cursor() as cur:
            cur.executescript(SCHEMA_SQL)
        logger.debug(f"Profile DB initialized at {self._db_path}")

    def close(self) -> None:
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None

    # ── Sync core ───────────────────────────────────────────

    def _get_sync(self, actor_id: str) -> Profile | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM profiles WHERE actor_id = ?", (actor_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return Profile(row["actor_id"], row["xp"], row["level"], row["title"], row["updated_at"])

    def _upsert_sync(self, actor_id: str, patch: dict[str, Any]) -> Profile:
        unknown = set(patch) - set(_COLUMNS)
        if unknown:
            raise ProfileStoreError(f"unknown profile fields: {sorted(unknown)}")
        current = self._get_sync(actor_id) or Profile(actor_id)
        for key, value in patch.items():
            setattr(current, key, value)
        current.updated_at = datetime.now().isoformat(timespec="seconds")
        with self._cursor() as cur:
            cur.execute(
                """INSERT INTO profiles (actor_id, xp, level, title, updated_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(actor_id) DO UPDATE SET
                     xp = excluded.xp, level = excluded.level,
                     title = excluded.title, updated_at = excluded.updated_at""",
                (actor_id, current.xp, current.level, current.title, current.updated_at),
            )
        return current

    # ── Async API ───────────────────────────────────────────

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise ProfileStoreError(str(e)) from e

    async def get_profile(self, actor_id: str) -> Profile | None:
        return await self._run(self._get_sync, actor_id)

    async def upsert_profile(self, actor_id: str, patch: dict[str, Any]) -> Profile:
        return await self._run(self._upsert_sync, actor_id, patch)
