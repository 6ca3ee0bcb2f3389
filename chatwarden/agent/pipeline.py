"""Dispatch pipeline: the ordered interceptor chain run for every message.

Stages, in order (the first short-circuit exit wins):
    1. Mute check (silent drop)
    2. Presence side-effect (typing indicator, never blocks)
    3. Privileged override (terminal)
    4. Progression side-effect (XP award, level-up announcement)
    5. History side-effect (rolling transcript)
    6. Insult retort (one-to-one only)
    7. Policy enforcement (blocked content, then burst frequency)
    8. Command dispatch (capability, cooldown, handler)
    9. Generative response (trigger rules, cache, provider)
   10. Residual content (view-once capture, sticker reaction)

Each stage catches its own failures: they are logged, sent to the
moderator channel and, for user-facing stages, turned into an apology.
Side-effect stages (2, 4, 5) never reply to the user. run() is the
last-resort guard so one bad message never stops the rest of its batch.

All state lives on AgentLoop; the pipeline reaches it through a
back-reference (self._loop).
"""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

from chatwarden.agent import replies, security
from chatwarden.agent.commands import Capability
from chatwarden.agent.normalizer import media_info
from chatwarden.agent.overrides import run_override
from chatwarden.agent.response_cleaning import clean_response, is_valid_response, preview, prompt_key
from chatwarden.bus.events import (
    NON_COUNTABLE_KINDS,
    PRESENCE_MEDIA_KINDS,
    ContentKind,
    InboundContext,
)
from chatwarden.channels.base import PermissionDeniedError, TransportTransientError
from chatwarden.utils.helpers import handle_of

if TYPE_CHECKING:
    from chatwarden.agent.loop import AgentLoop

# Content kinds the generative stage may answer
_ANSWERABLE_KINDS = frozenset({
    ContentKind.TEXT,
    ContentKind.IMAGE,
    ContentKind.VIDEO,
    ContentKind.DOCUMENT,
})

# Content kinds that may get a random emoji reaction
_REACTABLE_KINDS = frozenset({ContentKind.STICKER})


class DispatchPipeline:
    """Runs one InboundContext through every stage."""

    def __init__(self, loop: "AgentLoop") -> None:
        self._loop = loop

    # ── Public entry point ────────────────────────────────────────────

    async def run(self, ctx: InboundContext) -> None:
        try:
            await self._run(ctx)
        except Exception as e:
            await self._report_failure(ctx, "pipeline", e, reply_user=True)

    async def _run(self, ctx: InboundContext) -> None:
        loop = self._loop
        now = loop.clock()
        actor = ctx.actor_id

        # 1. Mute check
        if loop.mutes.is_muted(actor, now):
            logger.debug(f"Dropping message from muted {actor} in {ctx.conversation_id}")
            return

        privileged = loop.is_privileged(actor)
        command = loop.commands.match(ctx.text, loop.config.bot.command_prefix)
        policy = loop.policies.get(ctx.conversation_id) if ctx.is_group else None

        # 2. Presence side-effect
        if (
            policy is not None
            and policy.ai_enabled
            and command is None
            and (security.looks_like_prose(ctx.text) or ctx.content_kind in PRESENCE_MEDIA_KINDS)
        ):
            loop.spawn(self._side_effect("presence", ctx, lambda: loop.presence.touch(ctx.conversation_id)))

        # 3. Privileged override
        if privileged and ctx.text.startswith(loop.config.bot.override_sigil):
            await self._stage("override", ctx, lambda: run_override(loop, ctx))
            return

        # 4. Progression side-effect
        if ctx.content_kind not in NON_COUNTABLE_KINDS:
            await self._side_effect("progression", ctx, lambda: self._award_xp(ctx))

        # 5. History side-effect
        if ctx.text:
            await self._side_effect("history", ctx, lambda: self._record_history(ctx))

        # 6. Insult retort
        if not ctx.is_group and command is None and security.is_insult(ctx.text):
            await self._stage("retort", ctx, lambda: loop.reply(ctx, replies.pick(replies.RETORTS, loop.rng)))
            return

        # 7. Policy enforcement
        if policy is not None and not privileged:
            handled = await self._stage("policy", ctx, lambda: self._enforce(ctx, policy, command is not None, now))
            if handled:
                return

        # 8. Command dispatch
        if command is not None:
            spec, args = command
            await self._stage(f"command:{spec.name}", ctx, lambda: self._dispatch_command(ctx, spec, args, privileged, now))
            return

        # 9. Generative response
        reason = self.should_respond(ctx, privileged, policy)
        if reason:
            logger.info(f"Responding to {actor} in {ctx.conversation_id} ({reason}): {preview(ctx.text)}")
            await self._stage("generate", ctx, lambda: self._generate(ctx, now))
            return

        # 10. Residual content
        if ctx.content_kind is ContentKind.VIEW_ONCE:
            await self._stage("vault", ctx, lambda: self._capture(ctx, now))
        elif ctx.content_kind in _REACTABLE_KINDS and loop.rng.random() < loop.config.guard.reaction_probability:
            await self._stage("reaction", ctx, lambda: self._react(ctx))

    # ── Failure handling ──────────────────────────────────────────────

    async def _stage(self, name: str, ctx: InboundContext, action: Callable[[], Awaitable[Any]]) -> Any:
        """Run a user-facing stage. Failures become an apology; returns None on failure."""
        try:
            return await action()
        except TransportTransientError as e:
            logger.debug(f"Stage {name}: transient transport error dropped: {e}")
        except PermissionDeniedError as e:
            logger.warning(f"Stage {name}: permission denied in {ctx.conversation_id}: {e}")
            await self._loop.safe_reply(ctx, "I don't have permission to do that here.")
        except Exception as e:
            await self._report_failure(ctx, name, e, reply_user=True)
        return None

    async def _side_effect(self, name: str, ctx: InboundContext, action: Callable[[], Awaitable[Any]]) -> None:
        """Run a side-effect stage. Failures are logged and reported, never shown to the user."""
        try:
            await action()
        except TransportTransientError as e:
            logger.debug(f"Side effect {name}: transient transport error dropped: {e}")
        except Exception as e:
            await self._report_failure(ctx, name, e, reply_user=False)

    async def _report_failure(self, ctx: InboundContext, stage: str, error: Exception, *, reply_user: bool) -> None:
        logger.opt(exception=error).error(f"Stage {stage} failed for {ctx.actor_id} in {ctx.conversation_id}: {error}")
        detail = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        await self._loop.notifier.notify(
            f"⚠️ {stage} failed: {type(error).__name__}: {error}\nchat: {ctx.conversation_id}\nactor: {ctx.actor_id}\n"
            f"text: {preview(ctx.text, 200)}\n\n{detail}",
            account=ctx.account,
        )
        if reply_user:
            await self._loop.safe_reply(ctx, replies.pick(replies.FAILURE_RESPONSES, self._loop.rng))

    # ── Side effects ──────────────────────────────────────────────────

    async def _award_xp(self, ctx: InboundContext) -> None:
        loop = self._loop
        async with loop.locks.hold(ctx.actor_id):
            award = await loop.profiles.award_xp(ctx.actor_id, loop.config.guard.xp_per_message)
        if award.leveled_up and ctx.is_group:
            logger.info(f"{ctx.actor_id} reached level {award.profile.level}")
            await loop.reply(
                ctx,
                replies.LEVEL_UP.format(
                    handle=handle_of(ctx.actor_id),
                    level=award.profile.level,
                    title=award.profile.title,
                ),
                mentions=[ctx.actor_id],
                quote=False,
            )

    async def _record_history(self, ctx: InboundContext) -> None:
        self._loop.transcripts.append(ctx.conversation_id, ctx.display_name, ctx.text)

    # ── Policy enforcement ────────────────────────────────────────────

    async def _enforce(self, ctx: InboundContext, policy, is_command: bool, now: float) -> bool:
        """Returns True when a violation was remediated and the pipeline must stop."""
        loop = self._loop
        async with loop.locks.hold(ctx.actor_id):
            if policy.link_protection_enabled and loop.abuse.contains_blocked(ctx.text):
                await self._remediate_blocked(ctx)
                return True
            if policy.spam_filter_enabled and not is_command and loop.abuse.check_burst(ctx.actor_id, now):
                await self._remediate_burst(ctx)
                return True
        return False

    async def _remediate_blocked(self, ctx: InboundContext) -> None:
        loop = self._loop
        actor = ctx.actor_id
        handle = handle_of(actor)
        count = loop.abuse.add_warning(actor)
        limit = loop.abuse.max_warnings
        logger.info(f"Blocked content from {actor} in {ctx.conversation_id} (warning {count}/{limit})")

        await loop.reply(
            ctx,
            replies.LINK_WARNING.format(handle=handle, count=count, max=limit),
            mentions=[actor],
            quote=False,
            self_destruct=True,
        )
        await self._delete_offending(ctx)

        if count < limit:
            return
        loop.abuse.reset_warnings(actor)
        if await self._try_remove(ctx, actor):
            await loop.reply(ctx, replies.LINK_REMOVED.format(handle=handle, max=limit), mentions=[actor], quote=False)

    async def _remediate_burst(self, ctx: InboundContext) -> None:
        loop = self._loop
        actor = ctx.actor_id
        logger.info(f"Burst detected from {actor} in {ctx.conversation_id} ({loop.abuse.burst_count(actor)} msgs)")
        if await self._try_remove(ctx, actor):
            loop.abuse.clear_burst(actor)
            await loop.reply(ctx, replies.SPAM_REMOVED.format(handle=handle_of(actor)), mentions=[actor], quote=False)

    async def _try_remove(self, ctx: InboundContext, actor: str) -> bool:
        """Remove actor if the bot is an admin. Reports the permission gap otherwise."""
        loop = self._loop
        try:
            await loop.remove_participant(ctx, actor)
            return True
        except PermissionDeniedError as e:
            logger.warning(f"Cannot remove {actor} from {ctx.conversation_id}: {e}")
            await loop.reply(ctx, replies.NO_PERMISSION.format(handle=handle_of(actor)), mentions=[actor], quote=False)
            await loop.notifier.notify(
                f"🔐 Wanted to remove {actor} from {ctx.conversation_id} but I am not an admin there.",
                account=ctx.account,
            )
            return False

    async def _delete_offending(self, ctx: InboundContext) -> None:
        channel = self._loop.accounts.resolve(ctx.account)
        try:
            await channel.delete_message(ctx.conversation_id, ctx.message_id, participant=ctx.actor_id)
        except PermissionDeniedError as e:
            logger.warning(f"Could not delete message {ctx.message_id} in {ctx.conversation_id}: {e}")

    # ── Commands ──────────────────────────────────────────────────────

    async def _dispatch_command(self, ctx: InboundContext, spec, args: list[str], privileged: bool, now: float) -> None:
        loop = self._loop
        if spec.capability is Capability.PRIVILEGED and not privileged:
            logger.info(f"Command {spec.name} refused for unprivileged {ctx.actor_id}")
            await loop.reply(ctx, replies.PRIVILEGED_ONLY)
            return
        if spec.group_only and not ctx.is_group:
            await loop.reply(ctx, replies.GROUP_ONLY)
            return
        async with loop.locks.hold(ctx.actor_id):
            allowed = loop.rate_limiter.allow(ctx.actor_id, now, privileged=privileged)
            wait = 0 if allowed else loop.rate_limiter.retry_after(ctx.actor_id, now)
        if not allowed:
            logger.debug(f"Command {spec.name} from {ctx.actor_id} rate limited ({wait}s left)")
            await loop.reply(ctx, replies.COOLDOWN.format(seconds=wait))
            return
        logger.info(f"Command {spec.name} from {ctx.actor_id} in {ctx.conversation_id} args={args}")
        await spec.handler(loop, ctx, args)

    # ── Generative response ───────────────────────────────────────────

    def should_respond(self, ctx: InboundContext, privileged: bool, policy=None) -> str | None:
        """Decide whether the generative stage runs. Returns the reason, or None."""
        loop = self._loop
        if not ctx.text or ctx.content_kind not in _ANSWERABLE_KINDS:
            return None
        if not ctx.is_group:
            return "direct"
        if policy is not None and not policy.ai_enabled:
            return None
        if loop.config.ai.always_respond:
            return "always"

        self_id = loop.self_id_for(ctx.account)
        if security.mentions_bot_identity(ctx, self_id):
            return "mention"
        if security.replies_to_bot(ctx, self_id):
            return "reply"
        if loop.name_pattern.search(ctx.text):
            return "name"
        if security.mentions_bot_handle(ctx.text, self_id):
            return "handle"

        ai = loop.config.ai
        probability = ai.base_probability
        if privileged:
            probability += ai.privileged_boost
        if loop.policies.is_talkative(ctx.actor_id):
            probability += ai.talkative_boost
        if loop.rng.random() < min(1.0, probability):
            return "random"
        return None

    async def _generate(self, ctx: InboundContext, now: float) -> None:
        loop = self._loop
        key = prompt_key(ctx.actor_id, ctx.text)
        text = loop.cache.get(key, now)
        if text is not None:
            logger.debug(f"Cache hit for {key!r}")
        else:
            result = await loop.provider.generate(loop.context.build(ctx))
            if result.blocked:
                await loop.notifier.notify(
                    f"🛑 Generation blocked ({result.blocked_reason}) for {ctx.actor_id}: {preview(ctx.text, 200)}",
                    account=ctx.account,
                )
                await loop.reply(ctx, replies.pick(replies.BLOCKED_RESPONSES, loop.rng))
                return
            cleaned = clean_response(result.text, loop.config.bot.name)
            if not is_valid_response(cleaned):
                logger.warning(f"Invalid generation from {result.model or 'provider'} ({len(result.text or '')} chars)")
                await loop.notifier.notify(
                    f"🤖 Empty or oversized generation for {ctx.actor_id} (model {result.model})",
                    account=ctx.account,
                )
                await loop.reply(ctx, replies.pick(replies.FALLBACK_RESPONSES, loop.rng))
                return
            text = cleaned
            loop.cache.set(key, text, now)

        await loop.reply(ctx, text)
        loop.transcripts.append(ctx.conversation_id, loop.config.bot.name, text, is_bot=True)

    # ── Residual content ──────────────────────────────────────────────

    async def _capture(self, ctx: InboundContext, now: float) -> None:
        loop = self._loop
        info = media_info(ctx.raw_handle)
        if info is None:
            logger.debug(f"View-once from {ctx.actor_id} carried no downloadable media")
            return
        media_kind, mime_type, caption = info
        data = await loop.accounts.resolve(ctx.account).download_media(ctx.raw_handle)
        loop.vault.capture(
            ctx.actor_id,
            media_kind=media_kind,
            data=data,
            mime_type=mime_type,
            caption=caption,
            conversation_id=ctx.conversation_id,
            now=now,
        )

    async def _react(self, ctx: InboundContext) -> None:
        loop = self._loop
        emoji = replies.pick(loop.config.guard.reaction_emojis, loop.rng)
        await loop.accounts.resolve(ctx.account).send_reaction(ctx.conversation_id, ctx.raw_handle, emoji)
