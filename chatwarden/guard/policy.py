"""Per-group policy toggles and per-actor preferences. In memory only."""

from __future__ import annotations

from dataclasses import dataclass, fields

from chatwarden.config.schema import PolicyDefaults


@dataclass
class GroupPolicy:
    ai_enabled: bool = True
    welcome_enabled: bool = True
    goodbye_enabled: bool = False
    spam_filter_enabled: bool = True
    link_protection_enabled: bool = True


# Command-facing names for each toggle
TOGGLES: dict[str, str] = {
    "ai": "ai_enabled",
    "welcome": "welcome_enabled",
    "goodbye": "goodbye_enabled",
    "antispam": "spam_filter_enabled",
    "antilink": "link_protection_enabled",
}


class PolicyStore:
    """conversation_id -> GroupPolicy, defaulted on first access."""

    def __init__(self, defaults: PolicyDefaults | None = None) -> None:
        self._defaults = defaults or PolicyDefaults()
        self._policies: dict[str, GroupPolicy] = {}
        self._talkative: set[str] = set()

    def get(self, conversation_id: str) -> GroupPolicy:
        policy = self._policies.get(conversation_id)
        if policy is None:
            policy = GroupPolicy(**{
                f.name: getattr(self._defaults, f.name) for f in fields(GroupPolicy)
            })
            self._policies[conversation_id] = policy
        return policy

    def set_toggle(self, conversation_id: str, toggle: str, enabled: bool) -> GroupPolicy:
        """Flip a toggle by its command name ("ai", "antilink", ...)."""
        attr = TOGGLES.get(toggle)
        if attr is None:
            raise KeyError(f"unknown policy toggle: {toggle}")
        policy = self.get(conversation_id)
        setattr(policy, attr, enabled)
        return policy

    # ── Talkative opt-in ──────────────────────────────────────────────

    def set_talkative(self, actor_id: str, enabled: bool) -> None:
        if enabled:
            self._talkative.add(actor_id)
        else:
            self._talkative.discard(actor_id)

    def is_talkative(self, actor_id: str) -> bool:
        return actor_id in self._talkative

    def __len__(self) -> int:
        return len(self._policies)
