"""User profiles and progression."""

from chatwarden.profiles.store import (
    Profile,
    ProfileStore,
    ProfileStoreError,
    SqliteProfileStore,
    XPAward,
)

__all__ = ["Profile", "ProfileStore", "ProfileStoreError", "SqliteProfileStore", "XPAward"]
