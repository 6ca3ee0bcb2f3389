"""Explicit account registry: account key -> channel.

Each Context carries the account it arrived on; the pipeline resolves the
channel once per Context and uses that handle for every reply.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from chatwarden.channels.base import BaseChannel


class AccountRegistry:
    """Small enumerated table of connected accounts."""

    def __init__(self) -> None:
        self._channels: dict[str, BaseChannel] = {}
        self._default: str | None = None

    def register(self, channel: BaseChannel, *, default: bool = False) -> None:
        if channel.account in self._channels:
            logger.warning(f"Account {channel.account} re-registered, replacing channel")
        self._channels[channel.account] = channel
        if default or self._default is None:
            self._default = channel.account

    def resolve(self, account: str | None) -> BaseChannel:
        """Return the channel for `account`, falling back to the default one.

        Raises KeyError when no channel is registered at all.
        """
        if account and account in self._channels:
            return self._channels[account]
        if self._default is None:
            raise KeyError("no transport accounts registered")
        if account:
            logger.debug(f"Unknown account {account!r}, using default {self._default!r}")
        return self._channels[self._default]

    @property
    def default(self) -> BaseChannel:
        return self.resolve(None)

    @property
    def accounts(self) -> list[str]:
        return list(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    async def start_all(self) -> list[asyncio.Task]:
        """Start every channel as a background task."""
        return [
            asyncio.create_task(ch.start(), name=f"channel:{acct}")
            for acct, ch in self._channels.items()
        ]

    async def stop_all(self) -> None:
        for account, channel in self._channels.items():
            try:
                await channel.stop()
            except Exception as e:
                logger.error(f"Error stopping channel {account}: {e}")
