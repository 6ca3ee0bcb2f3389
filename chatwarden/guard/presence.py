"""Typing-indicator debouncer.

touch() on a quiet conversation emits "composing" and arms a stop timer.
touch() while the timer is armed just re-arms it. When the timer fires,
"paused" is emitted and the timer cleared. On disconnect every armed timer
is cancelled without emitting anything.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable

from loguru import logger

PresenceSender = Callable[[str, str], Awaitable[None]]

COMPOSING = "composing"
PAUSED = "paused"


class PresenceDebouncer:
    """Per-conversation start/stop coalescing."""

    def __init__(self, send: PresenceSender, duration: float) -> None:
        self._send = send
        self.duration = duration
        self._timers: dict[str, asyncio.Task] = {}

    async def touch(self, conversation_id: str) -> None:
        existing = self._timers.get(conversation_id)
        # Registered before the send: an overlapping touch sees it as armed
        self._timers[conversation_id] = asyncio.create_task(self._stop_after(conversation_id))
        if existing is not None and not existing.done():
            existing.cancel()
            return
        try:
            await self._send(conversation_id, COMPOSING)
        except Exception as e:
            logger.debug(f"Presence start failed for {conversation_id}: {e}")

    async def _stop_after(self, conversation_id: str) -> None:
        try:
            await asyncio.sleep(self.duration)
        except asyncio.CancelledError:
            return
        if self._timers.get(conversation_id) is not asyncio.current_task():
            return
        self._timers.pop(conversation_id, None)
        try:
            await self._send(conversation_id, PAUSED)
        except Exception as e:
            logger.debug(f"Presence stop failed for {conversation_id}: {e}")

    def cancel_all(self, conversation_ids: Iterable[str] | None = None) -> int:
        """Cancel armed timers without emitting "paused". All of them unless ids are given."""
        targets = list(self._timers) if conversation_ids is None else list(conversation_ids)
        count = 0
        for conversation_id in targets:
            task = self._timers.pop(conversation_id, None)
            if task is not None and not task.done():
                task.cancel()
                count += 1
        if count:
            logger.debug(f"Presence: cancelled {count} pending timers")
        return count

    def conversations(self) -> list[str]:
        """Conversations with an armed timer."""
        return [cid for cid, task in self._timers.items() if not task.done()]

    def is_armed(self, conversation_id: str) -> bool:
        task = self._timers.get(conversation_id)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return sum(1 for t in self._timers.values() if not t.done())
