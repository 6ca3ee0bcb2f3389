"""Moderator notification channel. Best-effort: failures are logged, never raised."""

from __future__ import annotations

from loguru import logger

from chatwarden.channels.registry import AccountRegistry
from chatwarden.utils.helpers import truncate

_MAX_NOTICE_CHARS = 3500


class ModeratorNotifier:
    """Sends operational notices to the configured moderator conversation."""

    def __init__(self, accounts: AccountRegistry, chat_id: str) -> None:
        self._accounts = accounts
        self.chat_id = chat_id

    async def notify(self, text: str, account: str | None = None) -> None:
        if not self.chat_id:
            logger.debug(f"Moderator notice (no channel configured): {truncate(text, 200)}")
            return
        try:
            channel = self._accounts.resolve(account)
            await channel.send_text(self.chat_id, truncate(text, _MAX_NOTICE_CHARS))
        except Exception as e:
            logger.warning(f"Moderator notification failed: {e}")
