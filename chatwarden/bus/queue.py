"""Async message bus between transports and the agent loop.

Transports publish; the agent loop consumes. A single queue keeps the
relative order of batches, participant changes and connection events.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from chatwarden.bus.events import ConnectionEvent, MessageBatch, ParticipantEvent

BusEvent = MessageBatch | ParticipantEvent | ConnectionEvent


class MessageBus:
    """Inbound event queue."""

    def __init__(self, maxsize: int = 0) -> None:
        self._inbound: asyncio.Queue[BusEvent] = asyncio.Queue(maxsize=maxsize)

    async def publish_batch(self, batch: MessageBatch) -> None:
        if not batch.events:
            return
        logger.debug(f"Bus: batch of {len(batch.events)} events from {batch.account}")
        await self._inbound.put(batch)

    async def publish_participants(self, event: ParticipantEvent) -> None:
        await self._inbound.put(event)

    async def publish_connection(self, event: ConnectionEvent) -> None:
        await self._inbound.put(event)

    async def consume(self) -> BusEvent:
        """Wait for the next inbound event."""
        return await self._inbound.get()

    @property
    def inbound_size(self) -> int:
        return self._inbound.qsize()
