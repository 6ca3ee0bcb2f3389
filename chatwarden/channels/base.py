"""Transport contract consumed by the dispatch pipeline.

A channel owns one connected account on the messaging network. It publishes
inbound batches, participant changes and connection state to the bus, and
exposes the send/delete/participant primitives the pipeline needs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from chatwarden.bus.queue import MessageBus
from chatwarden.utils.helpers import canonical_id


class TransportError(Exception):
    """A transport primitive failed."""


class TransportTransientError(TransportError):
    """Single-message failure (decryption / session desync). Drop silently."""


class PermissionDeniedError(TransportError):
    """The bot lacks the conversation privilege an operation needs."""


@dataclass(frozen=True)
class Member:
    actor_id: str
    is_admin: bool = False


class BaseChannel(ABC):
    """Abstract transport for one account."""

    name: str = "base"

    def __init__(self, account: str, bus: MessageBus) -> None:
        self.account = account
        self.bus = bus
        self._running = False
        self._self_id = ""

    @property
    def self_id(self) -> str:
        """Canonical id of the bot's own account (empty until connected)."""
        return self._self_id

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Lifecycle ─────────────────────────────────────────

    @abstractmethod
    async def start(self) -> None:
        """Connect and start publishing events. Runs until stopped."""

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect."""

    # ── Primitives ────────────────────────────────────────

    @abstractmethod
    async def send_text(
        self,
        conversation_id: str,
        text: str,
        *,
        quoted: dict[str, Any] | None = None,
        mentions: list[str] | None = None,
    ) -> str:
        """Send a text message. Returns the sent message id."""

    @abstractmethod
    async def send_media(
        self,
        conversation_id: str,
        data: bytes,
        *,
        media_kind: str,
        mime_type: str,
        caption: str = "",
    ) -> str:
        """Send an image/video/audio/document. Returns the sent message id."""

    @abstractmethod
    async def send_reaction(self, conversation_id: str, raw_handle: dict[str, Any], emoji: str) -> None:
        """React to a message."""

    @abstractmethod
    async def delete_message(
        self,
        conversation_id: str,
        message_id: str,
        *,
        participant: str | None = None,
        from_me: bool = False,
    ) -> None:
        """Delete a message for everyone."""

    @abstractmethod
    async def update_participants(self, conversation_id: str, participants: list[str], action: str) -> None:
        """Add/remove/promote/demote group participants."""

    @abstractmethod
    async def fetch_members(self, conversation_id: str) -> list[Member]:
        """List the members of a group conversation."""

    @abstractmethod
    async def send_presence(self, conversation_id: str, state: str) -> None:
        """Send a presence update ("composing" or "paused")."""

    @abstractmethod
    async def download_media(self, raw_handle: dict[str, Any]) -> bytes:
        """Download the media attached to a raw message."""

    # ── Derived helpers ───────────────────────────────────

    async def is_admin(self, conversation_id: str, actor_id: str) -> bool:
        """Whether `actor_id` holds admin privileges in the group."""
        target = canonical_id(actor_id)
        members = await self.fetch_members(conversation_id)
        return any(m.is_admin and canonical_id(m.actor_id) == target for m in members)

    async def bot_is_admin(self, conversation_id: str) -> bool:
        if not self._self_id:
            return False
        return await self.is_admin(conversation_id, self._self_id)
