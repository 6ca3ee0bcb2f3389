"""Tests for XP/level/title rules."""

import pytest

from chatwarden.profiles.progression import TITLES, level_for_xp, title_for_level, xp_for_level


@pytest.mark.parametrize("xp, level", [(-5, 1), (0, 1), (49, 1), (50, 2), (199, 2), (200, 3), (450, 4)])
def test_level_for_xp(xp, level):
    assert level_for_xp(xp) == level


def test_level_is_monotonic_in_xp():
    levels = [level_for_xp(xp) for xp in range(0, 5000, 7)]
    assert levels == sorted(levels)


def test_xp_for_level_is_the_threshold():
    for level in range(1, 30):
        threshold = xp_for_level(level)
        assert level_for_xp(threshold) == level
        if threshold:
            assert level_for_xp(threshold - 1) == level - 1


def test_titles():
    assert title_for_level(1) == TITLES[0][1]
    assert title_for_level(4) == "Regular"
    assert title_for_level(10) == "Veteran"
    assert title_for_level(999) == TITLES[-1][1]
