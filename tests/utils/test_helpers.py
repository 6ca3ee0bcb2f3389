"""Tests for identifier canonicalization and small helpers."""

import sys

import pytest
from loguru import logger

from chatwarden.config.schema import LoggingConfig
from chatwarden.utils.helpers import canonical_id, ensure_dir, handle_of, is_group_id, truncate
from chatwarden.utils.logging import message_logger, setup_logging


@pytest.mark.parametrize("raw, expected", [
    ("15550001111:12@s.whatsapp.net", "15550001111@s.whatsapp.net"),
    ("15550001111@c.us", "15550001111@s.whatsapp.net"),
    ("+1 555 000 1111", "15550001111@s.whatsapp.net"),
    ("@15550001111", "15550001111@s.whatsapp.net"),
    ("120363000000@G.US", "120363000000@g.us"),
    ("", ""),
    (None, ""),
])
def test_canonical_id(raw, expected):
    assert canonical_id(raw) == expected


@pytest.mark.parametrize("raw", [
    "15550001111:12@s.whatsapp.net", "15550001111@c.us", "+1 (555) 000-1111", "1@g.us", "someone",
])
def test_canonical_id_is_idempotent(raw):
    once = canonical_id(raw)
    assert canonical_id(once) == once


def test_handle_and_group():
    assert handle_of("200:4@s.whatsapp.net") == "200"
    assert is_group_id("1@g.us")
    assert not is_group_id("1@s.whatsapp.net")


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("abcdefghij", 6) == "abc..."
    assert truncate("abcdef", 2) == "..."


def test_ensure_dir(tmp_path):
    target = ensure_dir(tmp_path / "a" / "b")
    assert target.is_dir()


def test_message_stream_goes_to_its_own_file(tmp_path):
    try:
        log_dir = setup_logging(LoggingConfig(log_dir=str(tmp_path), level="DEBUG"))
        logger.info("general record")
        message_logger.bind(conversation="1@g.us", actor="200@s.whatsapp.net").info("[text] Ann: hi")
        logger.complete()

        combined = (log_dir / "combined.log").read_text(encoding="utf-8")
        messages = (log_dir / "messages.log").read_text(encoding="utf-8")
        assert "general record" in combined
        assert "Ann: hi" not in combined
        assert "1@g.us | 200@s.whatsapp.net | [text] Ann: hi" in messages
    finally:
        logger.remove()
        logger.add(sys.stderr)
