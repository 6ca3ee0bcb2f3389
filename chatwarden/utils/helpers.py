"""Small shared helpers."""

import re
from pathlib import Path

USER_DOMAIN = "s.whatsapp.net"
GROUP_DOMAIN = "g.us"
_LEGACY_USER_DOMAIN = "c.us"
_DIGITS = re.compile(r"^\+?\d+$")


def canonical_id(raw: str | None) -> str:
    """Canonicalize an actor or conversation identifier.

    Every state map is keyed by the output of this function, so it must be
    idempotent: canonical_id(canonical_id(x)) == canonical_id(x).

        "15550001111:12@s.whatsapp.net" -> "15550001111@s.whatsapp.net"
        "15550001111@c.us"              -> "15550001111@s.whatsapp.net"
        "+1 555 000 1111"               -> "15550001111@s.whatsapp.net"
        "@15550001111"                  -> "15550001111@s.whatsapp.net"
    """
    if not raw:
        return ""
    value = raw.strip().lower()
    if "@" in value and not value.startswith("@"):
        user, domain = value.split("@", 1)
        user = user.split(":", 1)[0]
        if domain == _LEGACY_USER_DOMAIN:
            domain = USER_DOMAIN
        return f"{user}@{domain}"
    compact = re.sub(r"[\s\-()]", "", value.lstrip("@"))
    if _DIGITS.match(compact):
        return f"{compact.lstrip('+')}@{USER_DOMAIN}"
    return value


def handle_of(actor_id: str) -> str:
    """Return the numeric handle (user part) of an identifier."""
    return canonical_id(actor_id).split("@", 1)[0]


def is_group_id(conversation_id: str) -> bool:
    return conversation_id.endswith(f"@{GROUP_DOMAIN}")


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Cut text to at most `limit` characters (suffix included)."""
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(suffix))] + suffix


def ensure_dir(path: Path) -> Path:
    """Create a directory if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path
