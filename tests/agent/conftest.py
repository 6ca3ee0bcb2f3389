"""Shared builders for agent tests: an AgentLoop wired to a MockChannel."""

import random
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatwarden.agent.loop import AgentLoop
from chatwarden.bus.queue import MessageBus
from chatwarden.channels.mock import MockChannel
from chatwarden.channels.registry import AccountRegistry
from chatwarden.config.schema import Config
from chatwarden.profiles.progression import level_for_xp, title_for_level
from chatwarden.profiles.store import Profile, ProfileStore, ProfileStoreError
from chatwarden.providers.base import GenerationResult

OWNER = "100@s.whatsapp.net"
USER = "200@s.whatsapp.net"
OTHER = "300@s.whatsapp.net"
BOT = "999@s.whatsapp.net"
GROUP = "120363000000@g.us"
MOD_CHAT = "555000@g.us"


class Clock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FixedRandom(random.Random):
    """random() always returns `value`; choice() stays deterministic via the seed."""

    def __init__(self, value: float = 0.99):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


class MemoryProfileStore(ProfileStore):
    def __init__(self):
        self.profiles: dict[str, Profile] = {}
        self.fail = False

    async def get_profile(self, actor_id: str) -> Profile | None:
        if self.fail:
            raise ProfileStoreError("database is locked")
        return self.profiles.get(actor_id)

    async def upsert_profile(self, actor_id: str, patch: dict[str, Any]) -> Profile:
        if self.fail:
            raise ProfileStoreError("database is locked")
        current = self.profiles.get(actor_id) or Profile(actor_id)
        xp = patch.get("xp", current.xp)
        level = patch.get("level", level_for_xp(xp))
        profile = Profile(actor_id, xp, level, patch.get("title", title_for_level(level)))
        self.profiles[actor_id] = profile
        return profile


def make_provider(text: str = "Hello from the bot!", **kwargs) -> MagicMock:
    provider = MagicMock()
    provider.generate = AsyncMock(return_value=GenerationResult(text=text, model="test-model", **kwargs))
    return provider


def make_config(**sections: dict) -> Config:
    data: dict[str, dict] = {
        "bot": {"name": "Warden", "ownerIds": [OWNER], "moderatorChatId": MOD_CHAT},
        "guard": {"commandCooldown": 5, "warningDeleteAfter": 30},
    }
    for section, values in sections.items():
        data.setdefault(section, {}).update(values)
    return Config.model_validate(data)


class Harness:
    """Everything a pipeline test needs, with handy accessors."""

    def __init__(self, config: Config, provider, rng_value: float):
        self.bus = MessageBus()
        self.channel = MockChannel(bus=self.bus, self_id=BOT)
        self.channel.set_members(GROUP, [OWNER, USER, OTHER, BOT], admins=[BOT])
        self.accounts = AccountRegistry()
        self.accounts.register(self.channel)
        self.profiles = MemoryProfileStore()
        self.provider = provider
        self.clock = Clock()
        self.rng = FixedRandom(rng_value)
        self.loop = AgentLoop(
            config,
            self.bus,
            self.accounts,
            provider,
            self.profiles,
            rng=self.rng,
            clock=self.clock,
        )

    def texts(self, conversation_id: str | None = None) -> list[str]:
        return [
            c.payload["text"] for c in self.channel.sent("text")
            if conversation_id is None or c.conversation_id == conversation_id
        ]

    def moderator_notices(self) -> list[str]:
        return self.texts(MOD_CHAT)

    def user_texts(self) -> list[str]:
        return [c.payload["text"] for c in self.channel.sent("text") if c.conversation_id != MOD_CHAT]


@pytest.fixture
def make_harness():
    def _make(provider=None, rng_value: float = 0.99, **sections) -> Harness:
        return Harness(make_config(**sections), provider or make_provider(), rng_value)
    return _make
