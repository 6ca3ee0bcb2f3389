"""Ephemeral media vault for view-once captures.

One slot per actor: a new capture silently replaces the previous one. A
successful reveal consumes the slot. Entries older than the expiration
window are gone, whether or not anyone asks for them: reveal checks the age
itself, and a background sweep deletes stale entries on a fixed interval.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

from loguru import logger


@dataclass(frozen=True)
class VaultEntry:
    media_kind: str        # "image" | "video" | "audio"
    data: bytes
    mime_type: str
    captured_at: float
    caption: str = ""
    conversation_id: str = ""


class MediaVault:
    """actor_id -> VaultEntry with absolute expiry and an active reaper."""

    def __init__(self, expiration: float, sweep_interval: float) -> None:
        self.expiration = expiration
        self.sweep_interval = sweep_interval
        self._entries: dict[str, VaultEntry] = {}
        self._sweep_task: asyncio.Task | None = None

    def _expired(self, entry: VaultEntry, now: float) -> bool:
        return now - entry.captured_at > self.expiration

    def capture(
        self,
        actor_id: str,
        *,
        media_kind: str,
        data: bytes,
        mime_type: str,
        caption: str = "",
        conversation_id: str = "",
        now: float | None = None,
    ) -> VaultEntry:
        now = time.time() if now is None else now
        entry = VaultEntry(media_kind, data, mime_type, now, caption, conversation_id)
        if actor_id in self._entries:
            logger.debug(f"Vault: replacing previous capture for {actor_id}")
        self._entries[actor_id] = entry
        logger.info(f"Vault: captured {media_kind} ({len(data)} bytes) from {actor_id}")
        return entry

    def reveal(self, actor_id: str, now: float | None = None) -> VaultEntry | None:
        """Return and consume the actor's capture, or None if absent/expired."""
        entry = self._entries.pop(actor_id, None)
        if entry is None:
            return None
        now = time.time() if now is None else now
        if self._expired(entry, now):
            logger.debug(f"Vault: capture for {actor_id} expired before reveal")
            return None
        return entry

    def peek(self, actor_id: str) -> VaultEntry | None:
        return self._entries.get(actor_id)

    def sweep(self, now: float | None = None) -> int:
        """Delete every expired entry. Returns how many were removed."""
        now = time.time() if now is None else now
        stale = [actor for actor, entry in self._entries.items() if self._expired(entry, now)]
        for actor in stale:
            self._entries.pop(actor, None)
        if stale:
            logger.debug(f"Vault: swept {len(stale)} expired captures")
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    # ── Background sweep ──────────────────────────────────────────────

    def start(self) -> None:
        """Start the periodic sweep (idempotent). Needs a running event loop."""
        if self._sweep_task and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="vault-sweep")

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.sweep_interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Vault sweep error: {e}")
