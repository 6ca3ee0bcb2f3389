"""Message bus and event types."""

from chatwarden.bus.events import (
    ConnectionEvent,
    ConnectionState,
    ContentKind,
    InboundContext,
    MessageBatch,
    ParticipantEvent,
    ReplyTarget,
)
from chatwarden.bus.queue import MessageBus

__all__ = [
    "ConnectionEvent",
    "ConnectionState",
    "ContentKind",
    "InboundContext",
    "MessageBatch",
    "MessageBus",
    "ParticipantEvent",
    "ReplyTarget",
]
