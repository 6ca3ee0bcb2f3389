"""Response cleaning: sanitize generated text before it is sent or cached.

All functions are pure str -> str|None with no instance state.
"""

from __future__ import annotations

import re

from chatwarden.utils.helpers import truncate

# Longest reply we accept from the generative service
MAX_RESPONSE_CHARS = 2000

# "Warden: blah": the model echoing its own speaker tag
_SPEAKER_TAG = re.compile(r"^\s*\**[\w .'-]{1,32}\**\s*:\s+")
_TRANSCRIPT_MARKER = re.compile(r"^\[Recent conversation\]\s*", re.IGNORECASE)


def is_valid_response(text: str | None) -> bool:
    """A usable reply is a non-empty string of at most MAX_RESPONSE_CHARS."""
    return isinstance(text, str) and 0 < len(text) <= MAX_RESPONSE_CHARS


def clean_response(content: str | None, bot_name: str) -> str | None:
    """Strip echoed prompt chrome. Returns None if nothing remains."""
    if not content:
        return None
    text = _TRANSCRIPT_MARKER.sub("", content.strip())
    tag = _SPEAKER_TAG.match(text)
    if tag and tag.group(0).strip(" *:").lower() == bot_name.lower():
        text = text[tag.end():]
    text = text.strip()
    return text or None


def prompt_key(actor_id: str, prompt: str) -> str:
    """Cache key: who asked plus the first 50 characters of what they asked."""
    return f"{actor_id}:{prompt.strip()[:50]}"


def preview(text: str, limit: int = 80) -> str:
    return truncate(" ".join(text.split()), limit)
