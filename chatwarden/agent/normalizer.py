"""Event normalizer: raw transport event -> InboundContext (or reject).

Rejects self-authored messages, broadcast/newsletter conversations,
undecryptable stubs, payload-less or protocol-only messages, and events whose
actor or conversation cannot be resolved. Optional data (mentions, quoted
message) that is missing or malformed becomes empty/None; nothing here raises.
"""

from __future__ import annotations

import time
from typing import Any

from loguru import logger

from chatwarden.bus.events import ContentKind, InboundContext, ReplyTarget
from chatwarden.utils.helpers import canonical_id, is_group_id

# Wrappers whose "message" field holds the real payload
_WRAPPERS = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
    "editedMessage",
)
_VIEW_ONCE_WRAPPERS = {"viewOnceMessage", "viewOnceMessageV2", "viewOnceMessageV2Extension"}

_MEDIA_NODES: dict[str, ContentKind] = {
    "imageMessage": ContentKind.IMAGE,
    "videoMessage": ContentKind.VIDEO,
    "audioMessage": ContentKind.AUDIO,
}

# Stub type the bridge reports when it could not decrypt a message
_CIPHERTEXT_STUBS = {2, "CIPHERTEXT"}

_BROADCAST_SUFFIXES = ("@broadcast", "@newsletter")


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _unwrap(message: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Peel wrapper layers. Returns (inner message, came through a view-once wrapper)."""
    view_once = False
    for _ in range(4):
        for wrapper in _WRAPPERS:
            inner = _as_dict(_as_dict(message.get(wrapper)).get("message"))
            if inner:
                view_once = view_once or wrapper in _VIEW_ONCE_WRAPPERS
                message = inner
                break
        else:
            break
    return message, view_once


def _text_of(message: dict[str, Any]) -> str:
    """Best-effort text of a (quoted) message payload."""
    message, _ = _unwrap(message)
    if isinstance(message.get("conversation"), str):
        return message["conversation"]
    for node_name in ("extendedTextMessage", "imageMessage", "videoMessage", "documentMessage"):
        node = _as_dict(message.get(node_name))
        text = node.get("text") or node.get("caption")
        if isinstance(text, str):
            return text
    return ""


def _classify(message: dict[str, Any], view_once: bool) -> tuple[ContentKind, str, dict[str, Any]] | None:
    """Return (kind, text, contextInfo) or None when nothing renderable is present."""
    if isinstance(message.get("conversation"), str):
        return ContentKind.TEXT, message["conversation"], {}

    node = _as_dict(message.get("extendedTextMessage"))
    if node:
        return ContentKind.TEXT, str(node.get("text") or ""), _as_dict(node.get("contextInfo"))

    for node_name, kind in _MEDIA_NODES.items():
        node = _as_dict(message.get(node_name))
        if node:
            if view_once or node.get("viewOnce"):
                kind = ContentKind.VIEW_ONCE
            return kind, str(node.get("caption") or ""), _as_dict(node.get("contextInfo"))

    node = _as_dict(message.get("documentMessage"))
    if node:
        return ContentKind.DOCUMENT, str(node.get("caption") or ""), _as_dict(node.get("contextInfo"))

    node = _as_dict(message.get("stickerMessage"))
    if node:
        return ContentKind.STICKER, "", _as_dict(node.get("contextInfo"))

    node = _as_dict(message.get("buttonsResponseMessage"))
    if node:
        text = node.get("selectedButtonId") or node.get("selectedDisplayText") or ""
        return ContentKind.BUTTON_REPLY, str(text), _as_dict(node.get("contextInfo"))

    node = _as_dict(message.get("templateButtonReplyMessage"))
    if node:
        text = node.get("selectedId") or node.get("selectedDisplayText") or ""
        return ContentKind.BUTTON_REPLY, str(text), _as_dict(node.get("contextInfo"))

    node = _as_dict(message.get("listResponseMessage"))
    if node:
        text = _as_dict(node.get("singleSelectReply")).get("selectedRowId") or node.get("title") or ""
        return ContentKind.BUTTON_REPLY, str(text), _as_dict(node.get("contextInfo"))

    node = _as_dict(message.get("reactionMessage"))
    if node:
        return ContentKind.REACTION, str(node.get("text") or ""), {}

    for node_name, field_name in (
        ("contactMessage", "displayName"),
        ("locationMessage", "name"),
        ("pollCreationMessage", "name"),
    ):
        node = _as_dict(message.get(node_name))
        if node:
            return ContentKind.OTHER, str(node.get(field_name) or ""), _as_dict(node.get("contextInfo"))

    return None


def _timestamp(raw: dict[str, Any]) -> float:
    value = raw.get("messageTimestamp")
    if isinstance(value, dict):
        value = value.get("low")
    try:
        return float(value) if value else time.time()
    except (TypeError, ValueError):
        return time.time()


def _reply_target(context_info: dict[str, Any], conversation_id: str, is_group: bool) -> ReplyTarget | None:
    quoted = _as_dict(context_info.get("quotedMessage"))
    if not quoted:
        return None
    author = canonical_id(context_info.get("participant") or ("" if is_group else conversation_id))
    if not author:
        return None
    raw = {
        "key": {
            "remoteJid": conversation_id,
            "id": context_info.get("stanzaId") or "",
            "participant": author,
        },
        "message": quoted,
    }
    return ReplyTarget(author_id=author, text=_text_of(quoted), raw=raw)


def normalize(raw: dict[str, Any], account: str = "default") -> InboundContext | None:
    """Convert one raw event. Returns None for anything that should be ignored."""
    try:
        return _normalize(raw, account)
    except Exception as e:
        logger.warning(f"Normalizer: dropping malformed event: {e}")
        return None


def _normalize(raw: dict[str, Any], account: str) -> InboundContext | None:
    raw = _as_dict(raw)
    key = _as_dict(raw.get("key"))
    if key.get("fromMe"):
        return None

    conversation_id = canonical_id(key.get("remoteJid"))
    if not conversation_id or conversation_id.endswith(_BROADCAST_SUFFIXES):
        return None

    if raw.get("messageStubType") in _CIPHERTEXT_STUBS:
        logger.debug(f"Normalizer: undecryptable message in {conversation_id}, dropped")
        return None

    message = _as_dict(raw.get("message"))
    if not message:
        return None
    inner, view_once = _unwrap(message)

    is_group = is_group_id(conversation_id)
    actor_id = canonical_id(key.get("participant") or raw.get("participant")) if is_group else conversation_id
    if not actor_id:
        return None

    classified = _classify(inner, view_once)
    if classified is None:
        return None
    kind, text, context_info = classified

    mentioned = context_info.get("mentionedJid")
    mentions = frozenset(
        canonical_id(j) for j in (mentioned if isinstance(mentioned, list) else []) if isinstance(j, str) and j
    )

    return InboundContext(
        actor_id=actor_id,
        conversation_id=conversation_id,
        is_group=is_group,
        text=text.strip(),
        content_kind=kind,
        message_id=str(key.get("id") or ""),
        mentions=mentions,
        reply_target=_reply_target(context_info, conversation_id, is_group),
        push_name=str(raw.get("pushName") or ""),
        account=str(raw.get("account") or account),
        timestamp=_timestamp(raw),
        raw_handle=raw,
    )


def media_info(raw: dict[str, Any]) -> tuple[str, str, str] | None:
    """(media_kind, mime_type, caption) of the media inside a raw event, if any."""
    inner, _ = _unwrap(_as_dict(_as_dict(raw).get("message")))
    for node_name, kind in _MEDIA_NODES.items():
        node = _as_dict(inner.get(node_name))
        if node:
            return kind.value, str(node.get("mimetype") or "application/octet-stream"), str(node.get("caption") or "")
    return None
