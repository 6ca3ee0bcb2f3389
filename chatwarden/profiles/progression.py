"""XP -> level -> title rules."""

from __future__ import annotations

import math

# XP needed for level n is XP_CURVE * (n - 1) ** 2
XP_CURVE = 50

# (minimum level, title), ascending
TITLES: list[tuple[int, str]] = [
    (1, "Newcomer"),
    (3, "Regular"),
    (5, "Chatterbox"),
    (10, "Veteran"),
    (20, "Elder"),
    (35, "Legend"),
]


def level_for_xp(xp: int) -> int:
    """Level reached with `xp` points. Monotonic, level 1 at 0 XP."""
    if xp <= 0:
        return 1
    return int(math.isqrt(xp // XP_CURVE)) + 1


def xp_for_level(level: int) -> int:
    """Minimum XP for `level`."""
    return XP_CURVE * max(0, level - 1) ** 2


def title_for_level(level: int) -> str:
    title = TITLES[0][1]
    for minimum, name in TITLES:
        if level >= minimum:
            title = name
    return title
