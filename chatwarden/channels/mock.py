"""Mock channel for tests and local experiments.

Records every primitive call instead of talking to a network, and injects
raw events through the same bus path the bridge channel uses.

Usage:
    mock = MockChannel(bus=bus, self_id="999@s.whatsapp.net")
    await mock.inject_text("hey warden", sender="111@s.whatsapp.net", chat="g1@g.us")
    assert mock.sent_texts()
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from chatwarden.bus.events import ConnectionEvent, ConnectionState, MessageBatch
from chatwarden.bus.queue import MessageBus
from chatwarden.channels.base import BaseChannel, Member, PermissionDeniedError, TransportError
from chatwarden.utils.helpers import canonical_id


@dataclass
class SentCall:
    """One recorded transport call."""
    op: str
    conversation_id: str
    payload: dict[str, Any] = field(default_factory=dict)


class MockChannel(BaseChannel):
    """Programmatic channel that captures outbound calls."""

    name = "mock"

    def __init__(
        self,
        bus: MessageBus | None = None,
        account: str = "default",
        self_id: str = "999@s.whatsapp.net",
    ) -> None:
        super().__init__(account, bus or MessageBus())
        self._self_id = canonical_id(self_id)
        self.calls: list[SentCall] = []
        self.members: dict[str, list[Member]] = {}
        self.media: dict[str, bytes] = {}
        self.fail_sends = False

    # ── Lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        self._running = True
        await self.bus.publish_connection(
            ConnectionEvent(self.account, ConnectionState.OPEN, self_id=self._self_id)
        )
        logger.debug("MockChannel started")

    async def stop(self) -> None:
        self._running = False
        logger.debug("MockChannel stopped")

    # ── Primitives ────────────────────────────────────────

    def _record(self, op: str, conversation_id: str, **payload: Any) -> str:
        if self.fail_sends:
            raise TransportError(f"mock {op} failed")
        self.calls.append(SentCall(op, conversation_id, payload))
        return uuid.uuid4().hex[:16].upper()

    async def send_text(self, conversation_id, text, *, quoted=None, mentions=None) -> str:
        return self._record("text", conversation_id, text=text, quoted=quoted, mentions=mentions or [])

    async def send_media(self, conversation_id, data, *, media_kind, mime_type, caption="") -> str:
        return self._record(
            "media", conversation_id,
            data=data, media_kind=media_kind, mime_type=mime_type, caption=caption,
        )

    async def send_reaction(self, conversation_id, raw_handle, emoji) -> None:
        self._record("reaction", conversation_id, emoji=emoji, key=raw_handle.get("key", {}))

    async def delete_message(self, conversation_id, message_id, *, participant=None, from_me=False) -> None:
        self._record("delete", conversation_id, message_id=message_id, participant=participant, from_me=from_me)

    async def update_participants(self, conversation_id, participants, action) -> None:
        if action == "remove" and not await self.bot_is_admin(conversation_id):
            raise PermissionDeniedError("bot is not an admin")
        self._record("participants", conversation_id, participants=list(participants), action=action)

    async def fetch_members(self, conversation_id) -> list[Member]:
        return list(self.members.get(conversation_id, []))

    async def send_presence(self, conversation_id, state) -> None:
        self._record("presence", conversation_id, state=state)

    async def download_media(self, raw_handle) -> bytes:
        message_id = raw_handle.get("key", {}).get("id", "")
        if message_id not in self.media:
            raise TransportError(f"no media for {message_id}")
        return self.media[message_id]

    # ── Test helpers ──────────────────────────────────────

    def set_members(self, conversation_id: str, members: list[str], admins: list[str] | None = None) -> None:
        admin_ids = {canonical_id(a) for a in admins or []}
        self.members[conversation_id] = [
            Member(canonical_id(m), canonical_id(m) in admin_ids) for m in members
        ]

    async def inject(self, events: list[dict[str, Any]]) -> None:
        await self.bus.publish_batch(MessageBatch(self.account, events))

    async def inject_text(self, text: str, sender: str, chat: str, **kwargs: Any) -> None:
        await self.inject([make_raw_text(text, sender, chat, **kwargs)])

    def sent(self, op: str | None = None) -> list[SentCall]:
        return [c for c in self.calls if op is None or c.op == op]

    def sent_texts(self) -> list[str]:
        return [c.payload["text"] for c in self.calls if c.op == "text"]

    def clear(self) -> None:
        self.calls.clear()


def make_raw_text(
    text: str,
    sender: str,
    chat: str,
    *,
    message_id: str | None = None,
    push_name: str = "",
    mentions: list[str] | None = None,
    quoted_author: str | None = None,
    quoted_text: str = "",
    from_me: bool = False,
) -> dict[str, Any]:
    """Build a raw text event in the bridge's message shape."""
    is_group = chat.endswith("@g.us")
    key: dict[str, Any] = {
        "remoteJid": chat,
        "fromMe": from_me,
        "id": message_id or uuid.uuid4().hex[:20].upper(),
    }
    if is_group:
        key["participant"] = sender
    context_info: dict[str, Any] = {}
    if mentions:
        context_info["mentionedJid"] = mentions
    if quoted_author:
        context_info["participant"] = quoted_author
        context_info["stanzaId"] = "Q" + key["id"]
        context_info["quotedMessage"] = {"conversation": quoted_text}
    message: dict[str, Any]
    if context_info:
        message = {"extendedTextMessage": {"text": text, "contextInfo": context_info}}
    else:
        message = {"conversation": text}
    return {"key": key, "message": message, "pushName": push_name}
