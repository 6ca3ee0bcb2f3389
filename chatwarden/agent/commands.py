"""Command registry and the built-in command handlers.

The table is built once at startup. Every entry declares its capability
requirement statically; the dispatch pipeline enforces it, then the shared
cooldown, then runs the handler. Handlers reach shared state through a
back-reference to the AgentLoop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from chatwarden.bus.events import InboundContext
from chatwarden.channels.base import PermissionDeniedError
from chatwarden.agent import replies
from chatwarden.guard.policy import TOGGLES
from chatwarden.profiles.progression import xp_for_level
from chatwarden.utils.helpers import canonical_id, handle_of

if TYPE_CHECKING:
    from chatwarden.agent.loop import AgentLoop

CommandHandler = Callable[["AgentLoop", InboundContext, list[str]], Awaitable[None]]


class Capability(str, Enum):
    OPEN = "open"
    PRIVILEGED = "privileged"


@dataclass(frozen=True)
class CommandSpec:
    name: str
    handler: CommandHandler
    summary: str
    capability: Capability = Capability.OPEN
    aliases: tuple[str, ...] = ()
    group_only: bool = False
    usage: str = ""


@dataclass
class ParsedCommand:
    name: str
    args: list[str] = field(default_factory=list)


def parse_command(text: str, prefix: str) -> ParsedCommand | None:
    """Split "!name arg1 arg2" into its parts. None if text is not prefixed."""
    stripped = (text or "").strip()
    if not stripped.startswith(prefix):
        return None
    body = stripped[len(prefix):].split()
    if not body:
        return None
    return ParsedCommand(body[0].lower(), body[1:])


class CommandRegistry:
    """Token -> CommandSpec, with aliases."""

    def __init__(self) -> None:
        self._specs: dict[str, CommandSpec] = {}
        self._index: dict[str, CommandSpec] = {}

    def register(self, spec: CommandSpec) -> None:
        for token in (spec.name, *spec.aliases):
            if token in self._index:
                raise ValueError(f"command token already registered: {token}")
            self._index[token] = spec
        self._specs[spec.name] = spec

    def resolve(self, token: str) -> CommandSpec | None:
        return self._index.get(token.lower())

    def match(self, text: str, prefix: str) -> tuple[CommandSpec, list[str]] | None:
        """Parse and resolve in one step. None unless text invokes a known command."""
        parsed = parse_command(text, prefix)
        if parsed is None:
            return None
        spec = self.resolve(parsed.name)
        if spec is None:
            return None
        return spec, parsed.args

    @property
    def specs(self) -> list[CommandSpec]:
        return list(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, token: str) -> bool:
        return token.lower() in self._index


# ── Argument helpers ──────────────────────────────────────────────────


def resolve_target(ctx: InboundContext, args: list[str]) -> str:
    """Who a command is aimed at: first mention, then quoted author, then a typed number."""
    if ctx.mentions:
        return sorted(ctx.mentions)[0]
    if ctx.reply_target is not None:
        return ctx.reply_target.author_id
    for arg in args:
        candidate = canonical_id(arg)
        if candidate and handle_of(candidate).isdigit():
            return candidate
    return ""


def _parse_switch(args: list[str]) -> bool | None:
    if not args:
        return None
    return {"on": True, "off": False, "enable": True, "disable": False}.get(args[0].lower())


def _mention(actor_id: str) -> str:
    return f"@{handle_of(actor_id)}"


# ── Handlers ──────────────────────────────────────────────────────────


async def cmd_help(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    prefix = loop.config.bot.command_prefix
    privileged = loop.is_privileged(ctx.actor_id)
    lines = [f"*{loop.config.bot.name} commands*"]
    for spec in loop.commands.specs:
        if spec.capability is Capability.PRIVILEGED and not privileged:
            continue
        usage = f" {spec.usage}" if spec.usage else ""
        lock = " 🔒" if spec.capability is Capability.PRIVILEGED else ""
        lines.append(f"{prefix}{spec.name}{usage} - {spec.summary}{lock}")
    await loop.reply(ctx, "\n".join(lines))


async def cmd_ping(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    latency_ms = max(0, int((loop.clock() - ctx.timestamp) * 1000))
    await loop.reply(ctx, f"🏓 Pong! ({latency_ms} ms)")


async def cmd_rank(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    target = resolve_target(ctx, args) or ctx.actor_id
    profile = await loop.profiles.get_profile(target)
    if profile is None:
        await loop.reply(ctx, f"{_mention(target)} has no XP yet.", mentions=[target])
        return
    next_at = xp_for_level(profile.level + 1)
    await loop.reply(
        ctx,
        f"📊 {_mention(target)}\nLevel {profile.level} ({profile.title})\n"
        f"XP: {profile.xp} / {next_at}",
        mentions=[target],
    )


async def cmd_talk(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    enabled = _parse_switch(args)
    if enabled is None:
        state = "on" if loop.policies.is_talkative(ctx.actor_id) else "off"
        await loop.reply(ctx, f"Talkative mode is {state}. Use {loop.config.bot.command_prefix}talk on|off.")
        return
    loop.policies.set_talkative(ctx.actor_id, enabled)
    await loop.reply(ctx, "🗣️ I'll chime in more often with you." if enabled else "🤐 Back to normal chattiness.")


def _toggle_handler(toggle: str) -> CommandHandler:
    async def handler(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
        enabled = _parse_switch(args)
        policy = loop.policies.get(ctx.conversation_id)
        if enabled is None:
            state = "on" if getattr(policy, TOGGLES[toggle]) else "off"
            await loop.reply(ctx, f"{toggle} is {state}. Use {loop.config.bot.command_prefix}{toggle} on|off.")
            return
        loop.policies.set_toggle(ctx.conversation_id, toggle, enabled)
        logger.info(f"Policy: {toggle}={'on' if enabled else 'off'} in {ctx.conversation_id} by {ctx.actor_id}")
        await loop.reply(ctx, f"✅ {toggle} {'enabled' if enabled else 'disabled'}.")

    handler.__name__ = f"cmd_{toggle}"
    return handler


async def cmd_warnings(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    target = resolve_target(ctx, args) or ctx.actor_id
    count = loop.abuse.warnings(target)
    await loop.reply(
        ctx,
        f"⚠️ {_mention(target)} has {count}/{loop.abuse.max_warnings} warnings.",
        mentions=[target],
    )


async def cmd_resetwarn(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    target = resolve_target(ctx, args)
    if not target:
        await loop.reply(ctx, f"Usage: {loop.config.bot.command_prefix}resetwarn @user")
        return
    loop.abuse.reset_warnings(target)
    await loop.reply(ctx, f"🧹 Warnings cleared for {_mention(target)}.", mentions=[target])


async def cmd_kick(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    target = resolve_target(ctx, args)
    if not target:
        await loop.reply(ctx, f"Usage: {loop.config.bot.command_prefix}kick @user")
        return
    if target == loop.self_id_for(ctx.account):
        await loop.reply(ctx, "Nice try.")
        return
    try:
        await loop.remove_participant(ctx, target)
    except PermissionDeniedError:
        await loop.reply(ctx, replies.NO_PERMISSION.format(handle=handle_of(target)), mentions=[target])
        return
    await loop.reply(ctx, f"👢 Removed {_mention(target)}.", mentions=[target])


async def cmd_reveal(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    target = resolve_target(ctx, args) or ctx.actor_id
    entry = loop.vault.reveal(target, now=loop.clock())
    if entry is None:
        await loop.reply(ctx, f"Nothing stored for {_mention(target)} (or it expired).", mentions=[target])
        return
    channel = loop.accounts.resolve(ctx.account)
    caption = f"👁️ View-once from {_mention(target)}"
    if entry.caption:
        caption = f"{caption}\n{entry.caption}"
    await channel.send_media(
        ctx.conversation_id,
        entry.data,
        media_kind=entry.media_kind,
        mime_type=entry.mime_type,
        caption=caption,
    )


async def cmd_stats(loop: "AgentLoop", ctx: InboundContext, args: list[str]) -> None:
    uptime = int(loop.clock() - loop.started_at)
    hours, rem = divmod(uptime, 3600)
    lines = [
        "*Stats*",
        f"Uptime: {hours}h {rem // 60}m",
        f"Cache: {len(loop.cache)} entries ({loop.cache.hits} hits / {loop.cache.misses} misses)",
        f"Vault: {len(loop.vault)} captures",
        f"Muted: {len(loop.mutes.snapshot())}",
        f"Warned: {len(loop.abuse.snapshot_warnings())}",
        f"Groups seen: {len(loop.policies)}",
        f"Accounts: {', '.join(loop.accounts.accounts)}",
    ]
    await loop.reply(ctx, "\n".join(lines))


def build_default_registry() -> CommandRegistry:
    registry = CommandRegistry()
    registry.register(CommandSpec("help", cmd_help, "Show this list", aliases=("menu",)))
    registry.register(CommandSpec("ping", cmd_ping, "Check that I'm awake"))
    registry.register(CommandSpec("rank", cmd_rank, "Show level and XP", aliases=("level", "xp"), usage="[@user]"))
    registry.register(CommandSpec("talk", cmd_talk, "Make me reply to you more often", usage="on|off"))
    for toggle in TOGGLES:
        registry.register(CommandSpec(
            toggle,
            _toggle_handler(toggle),
            f"Turn {toggle} on or off for this group",
            capability=Capability.PRIVILEGED,
            group_only=True,
            usage="on|off",
        ))
    registry.register(CommandSpec(
        "warnings", cmd_warnings, "Show warning count", aliases=("warns",), group_only=True, usage="[@user]",
    ))
    registry.register(CommandSpec(
        "resetwarn", cmd_resetwarn, "Clear someone's warnings",
        capability=Capability.PRIVILEGED, group_only=True, usage="@user",
    ))
    registry.register(CommandSpec(
        "kick", cmd_kick, "Remove someone from the group",
        capability=Capability.PRIVILEGED, group_only=True, usage="@user",
    ))
    registry.register(CommandSpec(
        "reveal", cmd_reveal, "Show someone's last view-once media",
        capability=Capability.PRIVILEGED, aliases=("vv",), usage="[@user]",
    ))
    registry.register(CommandSpec("stats", cmd_stats, "Runtime counters", capability=Capability.PRIVILEGED))
    return registry
