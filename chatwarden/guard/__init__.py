"""Ephemeral moderation and rate-control state.

Every manager here is an explicit object with constructor-injected limits.
None of it survives a restart.
"""

from chatwarden.guard.abuse import AbuseDetector
from chatwarden.guard.cache import ResponseCache
from chatwarden.guard.locks import KeyedLocks
from chatwarden.guard.mutes import MuteLedger
from chatwarden.guard.policy import GroupPolicy, PolicyStore
from chatwarden.guard.presence import PresenceDebouncer
from chatwarden.guard.rate_limit import CommandRateLimiter
from chatwarden.guard.vault import MediaVault, VaultEntry

__all__ = [
    "AbuseDetector",
    "CommandRateLimiter",
    "GroupPolicy",
    "KeyedLocks",
    "MediaVault",
    "MuteLedger",
    "PolicyStore",
    "PresenceDebouncer",
    "ResponseCache",
    "VaultEntry",
]
