"""Transport channels."""

from chatwarden.channels.base import (
    BaseChannel,
    Member,
    PermissionDeniedError,
    TransportError,
    TransportTransientError,
)
from chatwarden.channels.registry import AccountRegistry

__all__ = [
    "AccountRegistry",
    "BaseChannel",
    "Member",
    "PermissionDeniedError",
    "TransportError",
    "TransportTransientError",
]
