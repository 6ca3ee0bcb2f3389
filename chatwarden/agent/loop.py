"""Agent loop: owns every state manager and drives the dispatch pipeline."""

from __future__ import annotations

import asyncio
import random
import time
from typing import Any, Callable, Coroutine

from loguru import logger

from chatwarden.agent import replies
from chatwarden.agent.commands import CommandRegistry, build_default_registry
from chatwarden.agent.context import ContextBuilder
from chatwarden.agent.normalizer import normalize
from chatwarden.agent.notifier import ModeratorNotifier
from chatwarden.agent.pipeline import DispatchPipeline
from chatwarden.agent.response_cleaning import preview
from chatwarden.agent.security import build_name_pattern, canonical_owner_ids
from chatwarden.bus.events import (
    ConnectionEvent,
    ConnectionState,
    InboundContext,
    MessageBatch,
    ParticipantEvent,
)
from chatwarden.bus.queue import MessageBus
from chatwarden.channels.base import PermissionDeniedError
from chatwarden.channels.registry import AccountRegistry
from chatwarden.config.schema import Config
from chatwarden.guard import (
    AbuseDetector,
    CommandRateLimiter,
    KeyedLocks,
    MediaVault,
    MuteLedger,
    PolicyStore,
    PresenceDebouncer,
    ResponseCache,
)
from chatwarden.profiles.store import ProfileStore
from chatwarden.providers.base import GenerativeProvider
from chatwarden.session.manager import TranscriptManager
from chatwarden.utils.helpers import canonical_id, handle_of
from chatwarden.utils.logging import message_logger


class AgentLoop:
    """
    The agent loop is the core processing engine.

    It:
    1. Receives batches and membership/connection events from the bus
    2. Normalizes each raw event into an InboundContext
    3. Runs every context through the DispatchPipeline, in order per batch
    4. Owns the background tasks (presence timers, message deletions, vault sweep)
    """

    def __init__(
        self,
        config: Config,
        bus: MessageBus,
        accounts: AccountRegistry,
        provider: GenerativeProvider,
        profiles: ProfileStore,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        commands: CommandRegistry | None = None,
    ):
        self.config = config
        self.bus = bus
        self.accounts = accounts
        self.provider = provider
        self.profiles = profiles
        self.rng = rng or random.Random()
        self.clock = clock

        bot, guard = config.bot, config.guard
        self.owner_ids = canonical_owner_ids(bot.owner_ids)
        self.self_id = canonical_id(bot.self_id)
        self.name_pattern = build_name_pattern(bot.name)

        # State managers (in memory, rebuilt on every start)
        self.mutes = MuteLedger()
        self.rate_limiter = CommandRateLimiter(guard.command_cooldown)
        self.abuse = AbuseDetector(
            guard.blocked_patterns,
            spam_window=guard.spam_window,
            spam_threshold=guard.spam_threshold,
            max_warnings=guard.max_warnings,
        )
        self.cache: ResponseCache[str] = ResponseCache(guard.cache_capacity, guard.cache_ttl)
        self.vault = MediaVault(guard.vault_expiration, guard.vault_sweep_interval)
        self.presence = PresenceDebouncer(self._send_presence, guard.presence_duration)
        self.policies = PolicyStore(config.policy)
        self.locks = KeyedLocks()
        self.transcripts = TranscriptManager(max_lines=guard.transcript_length)

        self.context = ContextBuilder(config.ai, bot.name, self.transcripts)
        self.notifier = ModeratorNotifier(accounts, bot.moderator_chat_id)
        self.commands = commands or build_default_registry()
        self.pipeline = DispatchPipeline(self)

        self.started_at = self.clock()
        self._running = False
        self._tasks: set[asyncio.Task] = set()
        self._conversation_accounts: dict[str, str] = {}

    # ── Identity ──────────────────────────────────────────────────────

    def is_privileged(self, actor_id: str) -> bool:
        return canonical_id(actor_id) in self.owner_ids

    def self_id_for(self, account: str | None) -> str:
        """The bot's own id on an account, falling back to the configured one."""
        try:
            channel_id = self.accounts.resolve(account).self_id
        except KeyError:
            channel_id = ""
        return canonical_id(channel_id) or self.self_id

    # ── Background tasks ──────────────────────────────────────────────

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Background task failed: {exc}")

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    async def _delete_later(self, account: str, conversation_id: str, message_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.accounts.resolve(account).delete_message(conversation_id, message_id, from_me=True)
        except Exception as e:
            logger.debug(f"Self-destruct of {message_id} in {conversation_id} failed: {e}")

    def _account_of(self, conversation_id: str) -> str:
        """Account a conversation was last seen on (the default account if never seen)."""
        return self.accounts.resolve(self._conversation_accounts.get(conversation_id)).account

    async def _send_presence(self, conversation_id: str, state: str) -> None:
        await self.accounts.resolve(self._account_of(conversation_id)).send_presence(conversation_id, state)

    # ── Outbound helpers ──────────────────────────────────────────────

    async def send(
        self,
        account: str | None,
        conversation_id: str,
        text: str,
        *,
        mentions: list[str] | None = None,
        quoted: dict[str, Any] | None = None,
        self_destruct: bool = False,
    ) -> str:
        channel = self.accounts.resolve(account)
        message_id = await channel.send_text(conversation_id, text, quoted=quoted, mentions=mentions)
        if self_destruct and message_id:
            self.spawn(self._delete_later(
                channel.account, conversation_id, message_id, self.config.guard.warning_delete_after,
            ))
        return message_id

    async def reply(
        self,
        ctx: InboundContext,
        text: str,
        *,
        mentions: list[str] | None = None,
        quote: bool = True,
        self_destruct: bool = False,
    ) -> str:
        return await self.send(
            ctx.account,
            ctx.conversation_id,
            text,
            mentions=mentions,
            quoted=ctx.raw_handle if quote and ctx.raw_handle else None,
            self_destruct=self_destruct,
        )

    async def safe_reply(self, ctx: InboundContext, text: str) -> None:
        """reply() for failure paths: never raises."""
        try:
            await self.reply(ctx, text)
        except Exception as e:
            logger.warning(f"Could not deliver reply to {ctx.conversation_id}: {e}")

    async def remove_participant(self, ctx: InboundContext, actor_id: str) -> None:
        """Remove actor_id from the context's group. PermissionDeniedError if the bot is not an admin."""
        channel = self.accounts.resolve(ctx.account)
        if not await channel.bot_is_admin(ctx.conversation_id):
            raise PermissionDeniedError(f"not an admin in {ctx.conversation_id}")
        await channel.update_participants(ctx.conversation_id, [actor_id], "remove")
        logger.info(f"Removed {actor_id} from {ctx.conversation_id}")

    # ── Event handling ────────────────────────────────────────────────

    async def process_batch(self, batch: MessageBatch) -> None:
        """Normalize and run every event of one batch, strictly in order."""
        for raw in batch.events:
            ctx = normalize(raw, batch.account)
            if ctx is None:
                continue
            self._conversation_accounts[ctx.conversation_id] = ctx.account
            message_logger.bind(conversation=ctx.conversation_id, actor=ctx.actor_id).info(
                f"[{ctx.content_kind.value}] {ctx.display_name}: {preview(ctx.text, 200)}"
            )
            await self.pipeline.run(ctx)

    async def handle_participants(self, event: ParticipantEvent) -> None:
        conversation_id = canonical_id(event.conversation_id)
        policy = self.policies.get(conversation_id)
        self_id = self.self_id_for(event.account)
        members = [p for p in (canonical_id(x) for x in event.participants) if p and p != self_id]
        if not members:
            return

        if event.action == "add" and policy.welcome_enabled:
            template = replies.WELCOME
        elif event.action in ("remove", "leave") and policy.goodbye_enabled:
            # Removals done by the bot itself get no goodbye
            if event.author_id and canonical_id(event.author_id) == self_id:
                return
            template = replies.GOODBYE
        else:
            return

        mentions_text = " ".join(f"@{handle_of(m)}" for m in members)
        try:
            await self.send(event.account, conversation_id, template.format(mentions=mentions_text), mentions=members)
        except Exception as e:
            logger.warning(f"Participant notice failed in {conversation_id}: {e}")

    def handle_connection(self, event: ConnectionEvent) -> None:
        logger.info(f"Connection {event.account}: {event.state.value}")
        if event.state is ConnectionState.CLOSE:
            cancelled = self.presence.cancel_all(
                cid for cid in self.presence.conversations() if self._account_of(cid) == event.account
            )
            if cancelled:
                logger.debug(f"Cancelled {cancelled} presence timers after disconnect")
        elif event.state is ConnectionState.OPEN and event.self_id and not self.self_id:
            self.self_id = canonical_id(event.self_id)

    async def dispatch(self, event: Any) -> None:
        if isinstance(event, MessageBatch):
            # Batches are not serialized against each other
            self.spawn(self.process_batch(event))
        elif isinstance(event, ParticipantEvent):
            self.spawn(self.handle_participants(event))
        elif isinstance(event, ConnectionEvent):
            self.handle_connection(event)
        else:
            logger.warning(f"Unknown bus event: {type(event).__name__}")

    # ── Lifecycle ─────────────────────────────────────────────────────

    async def run(self) -> None:
        """Run the agent loop, processing events from the bus."""
        self._running = True
        self.vault.start()
        logger.info(f"Agent loop started as {self.config.bot.name}")

        while self._running:
            try:
                event = await asyncio.wait_for(self.bus.consume(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            await self.dispatch(event)

    async def stop(self) -> None:
        """Stop the loop and cancel every background task."""
        self._running = False
        self.presence.cancel_all()
        await self.vault.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Agent loop stopping")
