"""Tests for MockChannel and the admin helpers on BaseChannel."""

import pytest

from chatwarden.bus.events import ConnectionState, MessageBatch
from chatwarden.bus.queue import MessageBus
from chatwarden.channels.base import PermissionDeniedError, TransportError
from chatwarden.channels.mock import MockChannel, make_raw_text

GROUP = "1@g.us"
BOT = "999@s.whatsapp.net"


@pytest.mark.asyncio
async def test_start_publishes_open_connection():
    bus = MessageBus()
    channel = MockChannel(bus=bus, self_id="999:2@s.whatsapp.net")
    await channel.start()
    event = await bus.consume()
    assert event.state is ConnectionState.OPEN
    assert event.self_id == BOT


@pytest.mark.asyncio
async def test_inject_text_reaches_bus():
    bus = MessageBus()
    channel = MockChannel(bus=bus)
    await channel.inject_text("hello", sender="200@s.whatsapp.net", chat=GROUP)
    batch = await bus.consume()
    assert isinstance(batch, MessageBatch)
    assert batch.events[0]["message"] == {"conversation": "hello"}


@pytest.mark.asyncio
async def test_records_calls_and_clear():
    channel = MockChannel()
    message_id = await channel.send_text(GROUP, "hi", mentions=["x"])
    assert message_id
    await channel.send_presence(GROUP, "composing")
    assert channel.sent_texts() == ["hi"]
    assert [c.op for c in channel.sent()] == ["text", "presence"]
    channel.clear()
    assert channel.sent() == []


@pytest.mark.asyncio
async def test_fail_sends():
    channel = MockChannel()
    channel.fail_sends = True
    with pytest.raises(TransportError):
        await channel.send_text(GROUP, "hi")


@pytest.mark.asyncio
async def test_admin_checks():
    channel = MockChannel(self_id=BOT)
    channel.set_members(GROUP, ["200@c.us", BOT], admins=["200@s.whatsapp.net"])
    assert await channel.is_admin(GROUP, "200:1@s.whatsapp.net")
    assert not await channel.bot_is_admin(GROUP)
    with pytest.raises(PermissionDeniedError):
        await channel.update_participants(GROUP, ["200@s.whatsapp.net"], "remove")

    channel.set_members(GROUP, [BOT], admins=[BOT])
    await channel.update_participants(GROUP, ["200@s.whatsapp.net"], "remove")
    assert channel.sent("participants")[0].payload["action"] == "remove"


@pytest.mark.asyncio
async def test_download_media():
    channel = MockChannel()
    raw = make_raw_text("x", "200@s.whatsapp.net", GROUP, message_id="M1")
    with pytest.raises(TransportError):
        await channel.download_media(raw)
    channel.media["M1"] = b"bytes"
    assert await channel.download_media(raw) == b"bytes"
