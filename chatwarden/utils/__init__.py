"""Utility helpers."""

from chatwarden.utils.helpers import canonical_id, ensure_dir, handle_of, is_group_id, truncate

__all__ = ["canonical_id", "ensure_dir", "handle_of", "is_group_id", "truncate"]
