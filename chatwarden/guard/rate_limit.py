"""Command cooldown gate.

One global cooldown shared by every command. An actor's last accepted
command time is recorded; a new command inside the cooldown is rejected and
the remaining wait reported in whole seconds (rounded up).

Entries are never deleted; the table grows with distinct actors, which is
bounded by conversation membership.
"""

from __future__ import annotations

import math
import time


class CommandRateLimiter:
    """Sliding cooldown per actor."""

    def __init__(self, cooldown: float) -> None:
        self.cooldown = cooldown
        self._last_command_at: dict[str, float] = {}

    def allow(self, actor_id: str, now: float | None = None, *, privileged: bool = False) -> bool:
        """Accept (and record) a command, or reject it if still cooling down."""
        if privileged:
            return True
        now = time.time() if now is None else now
        last = self._last_command_at.get(actor_id)
        if last is not None and now - last < self.cooldown:
            return False
        self._last_command_at[actor_id] = now
        return True

    def retry_after(self, actor_id: str, now: float | None = None) -> int:
        """Seconds until the actor may issue another command (0 if free now)."""
        last = self._last_command_at.get(actor_id)
        if last is None:
            return 0
        now = time.time() if now is None else now
        remaining = self.cooldown - (now - last)
        return max(0, math.ceil(remaining))

    def reset(self, actor_id: str) -> bool:
        return self._last_command_at.pop(actor_id, None) is not None

    def __len__(self) -> int:
        return len(self._last_command_at)
