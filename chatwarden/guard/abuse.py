"""Abuse detection: blocked content, burst frequency and the warning ledger.

Two independent checks:
    1. Blocked-content scan: one union regex built from configured substrings
    2. Burst scan: ordered timestamps per actor, pruned to the spam window on
       every check; flags when the count exceeds the threshold

Warnings count link violations per actor. They only go up, except for an
explicit reset or the clear that follows escalation (removal from the group).

The burst threshold and the warning ceiling are independent settings.
"""

from __future__ import annotations

import re
import time

from loguru import logger


def build_blocked_pattern(patterns: list[str]) -> re.Pattern[str] | None:
    """Union regex of literal substrings, case-insensitive. None when empty."""
    cleaned = [p for p in (s.strip() for s in patterns) if p]
    if not cleaned:
        return None
    # Longest first so overlapping alternatives report the most specific match
    cleaned.sort(key=len, reverse=True)
    return re.compile("|".join(re.escape(p) for p in cleaned), re.IGNORECASE)


class AbuseDetector:
    """In-memory abuse state for all conversations."""

    def __init__(
        self,
        blocked_patterns: list[str],
        spam_window: float,
        spam_threshold: int,
        max_warnings: int,
    ) -> None:
        self.spam_window = spam_window
        self.spam_threshold = spam_threshold
        self.max_warnings = max_warnings
        self._blocked = build_blocked_pattern(blocked_patterns)
        self._timestamps: dict[str, list[float]] = {}
        self._warnings: dict[str, int] = {}

    # ── Blocked content ───────────────────────────────────────────────

    def find_blocked(self, text: str) -> str | None:
        """Return the first blocked substring found in `text`, or None."""
        if not self._blocked or not text:
            return None
        match = self._blocked.search(text)
        return match.group(0) if match else None

    def contains_blocked(self, text: str) -> bool:
        return self.find_blocked(text) is not None

    def set_blocked_patterns(self, patterns: list[str]) -> None:
        self._blocked = build_blocked_pattern(patterns)

    # ── Burst frequency ───────────────────────────────────────────────

    def check_burst(self, actor_id: str, now: float | None = None) -> bool:
        """Record a message and report whether the actor is flooding."""
        now = time.time() if now is None else now
        pruned = [t for t in self._timestamps.get(actor_id, []) if now - t < self.spam_window]
        pruned.append(now)
        self._timestamps[actor_id] = pruned
        flagged = len(pruned) > self.spam_threshold
        if flagged:
            logger.warning(f"Burst detected for {actor_id}: {len(pruned)} msgs in {self.spam_window}s")
        return flagged

    def clear_burst(self, actor_id: str) -> None:
        self._timestamps.pop(actor_id, None)

    def burst_count(self, actor_id: str) -> int:
        return len(self._timestamps.get(actor_id, []))

    # ── Warning ledger ────────────────────────────────────────────────

    def add_warning(self, actor_id: str) -> int:
        """Increment and return the actor's warning count."""
        count = self._warnings.get(actor_id, 0) + 1
        self._warnings[actor_id] = count
        return count

    def warnings(self, actor_id: str) -> int:
        return self._warnings.get(actor_id, 0)

    def reached_limit(self, actor_id: str) -> bool:
        return self._warnings.get(actor_id, 0) >= self.max_warnings

    def reset_warnings(self, actor_id: str) -> bool:
        """Explicit moderator reset (or the escalation clear)."""
        return self._warnings.pop(actor_id, None) is not None

    def snapshot_warnings(self) -> dict[str, int]:
        return dict(self._warnings)
