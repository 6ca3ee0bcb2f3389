"""Event types flowing from the transport into the agent loop."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ContentKind(str, Enum):
    """What an inbound message carries."""
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"
    BUTTON_REPLY = "button_reply"
    VIEW_ONCE = "view_once"
    REACTION = "reaction"
    OTHER = "other"


# Kinds that earn no progression points
NON_COUNTABLE_KINDS = frozenset({ContentKind.BUTTON_REPLY, ContentKind.REACTION})

# Media kinds that may wake the presence indicator
PRESENCE_MEDIA_KINDS = frozenset({ContentKind.IMAGE, ContentKind.VIDEO, ContentKind.AUDIO})


@dataclass(frozen=True)
class ReplyTarget:
    """The message an inbound message quotes."""
    author_id: str
    text: str
    raw: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class InboundContext:
    """One normalized inbound message. Read-only after creation.

    Produced by the normalizer, consumed by the dispatch pipeline and
    discarded when the pipeline run completes.
    """

    actor_id: str
    conversation_id: str
    is_group: bool
    text: str
    content_kind: ContentKind
    message_id: str = ""
    mentions: frozenset[str] = frozenset()
    reply_target: ReplyTarget | None = None
    push_name: str = ""
    account: str = "default"
    timestamp: float = field(default_factory=time.time)
    raw_handle: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def display_name(self) -> str:
        return self.push_name or self.actor_id.split("@", 1)[0]


@dataclass
class MessageBatch:
    """A batch of raw transport events, as emitted by one upsert notification."""
    account: str
    events: list[dict[str, Any]]
    received_at: float = field(default_factory=time.time)


@dataclass
class ParticipantEvent:
    """Members joined, left or were removed from a group."""
    account: str
    conversation_id: str
    action: str                      # "add" | "remove" | "promote" | "demote"
    participants: list[str]
    author_id: str = ""              # who performed the action, if known


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


@dataclass
class ConnectionEvent:
    account: str
    state: ConnectionState
    self_id: str = ""
