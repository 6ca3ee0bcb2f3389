"""Identity checks and the text patterns the pipeline branches on.

Pure functions, no instance state.
"""

import re

from chatwarden.bus.events import InboundContext
from chatwarden.utils.helpers import canonical_id, handle_of

# One-to-one insult detection (reactive retort). Word-boundary matched.
INSULT_PATTERN = re.compile(
    r"\b(stupid|idiot|dumb|useless|trash|garbage|shut up|loser|clown)\s*(bot)?\b",
    re.IGNORECASE,
)

# Prose needs at least this many letters to wake the typing indicator
_MIN_PROSE_LETTERS = 4
_LETTER = re.compile(r"[^\W\d_]", re.UNICODE)


def canonical_owner_ids(raw_ids: list[str]) -> set[str]:
    return {canonical_id(r) for r in raw_ids if r}


def build_name_pattern(bot_name: str) -> re.Pattern[str]:
    """Word-boundary match on the bot's name ("warden" not "wardens" or "awarden")."""
    return re.compile(rf"\b{re.escape(bot_name)}\b", re.IGNORECASE)


def is_insult(text: str) -> bool:
    return bool(text) and INSULT_PATTERN.search(text) is not None


def looks_like_prose(text: str) -> bool:
    return len(_LETTER.findall(text or "")) >= _MIN_PROSE_LETTERS


# ── Generative trigger checks ──────────────────────────────────────────


def mentions_bot_identity(ctx: InboundContext, self_id: str) -> bool:
    """Exact identity mention: the bot's address is in the mention list."""
    return bool(self_id) and canonical_id(self_id) in ctx.mentions


def replies_to_bot(ctx: InboundContext, self_id: str) -> bool:
    if not self_id or ctx.reply_target is None:
        return False
    return canonical_id(ctx.reply_target.author_id) == canonical_id(self_id)


def mentions_bot_handle(text: str, self_id: str) -> bool:
    """At-mention of the numeric handle typed into the text ("@15550001111")."""
    if not self_id or not text:
        return False
    handle = handle_of(self_id)
    return bool(handle) and re.search(rf"@{re.escape(handle)}\b", text) is not None
