"""Time-boxed suppression of actors.

A muted actor's messages are dropped silently at the very top of the
pipeline. Records are removed lazily the first time they are seen expired.
"""

from __future__ import annotations

import time

from loguru import logger


class MuteLedger:
    """actor_id -> expires_at."""

    def __init__(self) -> None:
        self._expires: dict[str, float] = {}

    def mute(self, actor_id: str, seconds: float, now: float | None = None) -> float:
        """Mute for `seconds`. Re-muting replaces the previous expiry. Returns expires_at."""
        now = time.time() if now is None else now
        expires_at = now + max(0.0, seconds)
        self._expires[actor_id] = expires_at
        logger.info(f"Muted {actor_id} for {seconds:.0f}s")
        return expires_at

    def unmute(self, actor_id: str) -> bool:
        removed = self._expires.pop(actor_id, None) is not None
        if removed:
            logger.info(f"Unmuted {actor_id}")
        return removed

    def is_muted(self, actor_id: str, now: float | None = None) -> bool:
        expires_at = self._expires.get(actor_id)
        if expires_at is None:
            return False
        now = time.time() if now is None else now
        if now >= expires_at:
            # pop avoids KeyError if removed concurrently
            self._expires.pop(actor_id, None)
            return False
        return True

    def remaining(self, actor_id: str, now: float | None = None) -> float:
        now = time.time() if now is None else now
        return max(0.0, self._expires.get(actor_id, now) - now)

    def snapshot(self) -> dict[str, float]:
        return dict(self._expires)
