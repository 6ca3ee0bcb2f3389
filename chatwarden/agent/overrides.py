"""Privileged override sub-commands ("$mute", "$unmute", "$give").

Only reached for privileged actors whose text starts with the override
sigil. Handling is terminal for the message whatever the outcome.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from loguru import logger

from chatwarden.agent.commands import resolve_target
from chatwarden.bus.events import InboundContext
from chatwarden.utils.helpers import handle_of

if TYPE_CHECKING:
    from chatwarden.agent.loop import AgentLoop

_USAGE = "Overrides: {s}mute @user [minutes] | {s}unmute @user | {s}give @user <points>"


def _number(args: list[str]) -> float | None:
    """First finite numeric argument, ignoring "@..." tokens."""
    for arg in args:
        if arg.startswith("@"):
            continue
        try:
            value = float(arg)
        except ValueError:
            continue
        if math.isfinite(value):
            return value
    return None


async def run_override(loop: "AgentLoop", ctx: InboundContext) -> None:
    sigil = loop.config.bot.override_sigil
    tokens = ctx.text.strip()[len(sigil):].split()
    if not tokens:
        await loop.reply(ctx, _USAGE.format(s=sigil))
        return

    name, args = tokens[0].lower(), tokens[1:]
    target = resolve_target(ctx, args)
    handle = handle_of(target) if target else ""

    if name == "mute":
        if not target:
            await loop.reply(ctx, _USAGE.format(s=sigil))
            return
        minutes = _number(args)
        if minutes is None or minutes <= 0:
            minutes = loop.config.guard.mute_default_minutes
        loop.mutes.mute(target, minutes * 60, now=loop.clock())
        logger.info(f"Override: {ctx.actor_id} muted {target} for {minutes:g} min")
        await loop.reply(ctx, f"🔇 @{handle} muted for {minutes:g} min.", mentions=[target])
        return

    if name == "unmute":
        if not target:
            await loop.reply(ctx, _USAGE.format(s=sigil))
            return
        was_muted = loop.mutes.unmute(target)
        logger.info(f"Override: {ctx.actor_id} unmuted {target} (was_muted={was_muted})")
        text = f"🔊 @{handle} can talk again." if was_muted else f"@{handle} wasn't muted."
        await loop.reply(ctx, text, mentions=[target])
        return

    if name == "give":
        points = _number(args)
        if not target or points is None:
            await loop.reply(ctx, _USAGE.format(s=sigil))
            return
        async with loop.locks.hold(target):
            award = await loop.profiles.award_xp(target, int(points))
        logger.info(f"Override: {ctx.actor_id} gave {int(points)} XP to {target}")
        await loop.reply(
            ctx,
            f"🎁 @{handle} received {int(points)} XP (now {award.profile.xp}, level {award.profile.level}).",
            mentions=[target],
        )
        return

    await loop.reply(ctx, _USAGE.format(s=sigil))
