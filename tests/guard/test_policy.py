"""Tests for PolicyStore: defaults, toggles, talkative opt-in."""

import pytest

from chatwarden.config.schema import PolicyDefaults
from chatwarden.guard.policy import TOGGLES, PolicyStore


class TestPolicyStore:
    def test_defaulted_on_first_access(self):
        store = PolicyStore(PolicyDefaults(goodbye_enabled=True, ai_enabled=False))
        policy = store.get("g1@g.us")
        assert policy.goodbye_enabled is True
        assert policy.ai_enabled is False
        assert len(store) == 1

    def test_policies_are_per_conversation(self):
        store = PolicyStore()
        store.set_toggle("g1@g.us", "ai", False)
        assert store.get("g1@g.us").ai_enabled is False
        assert store.get("g2@g.us").ai_enabled is True

    @pytest.mark.parametrize("toggle", sorted(TOGGLES))
    def test_every_toggle(self, toggle):
        store = PolicyStore()
        policy = store.set_toggle("g", toggle, False)
        assert getattr(policy, TOGGLES[toggle]) is False

    def test_unknown_toggle(self):
        with pytest.raises(KeyError):
            PolicyStore().set_toggle("g", "nope", True)

    def test_talkative(self):
        store = PolicyStore()
        store.set_talkative("u", True)
        assert store.is_talkative("u")
        store.set_talkative("u", False)
        assert not store.is_talkative("u")
