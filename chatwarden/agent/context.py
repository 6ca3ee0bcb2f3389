"""Prompt builder for the generative service.

Prompt size is budgeted: only the last N transcript lines are included and
each is truncated, which bounds the latency of the AI call.
"""

from __future__ import annotations

from chatwarden.bus.events import InboundContext
from chatwarden.config.schema import AIConfig
from chatwarden.providers.base import PromptParts
from chatwarden.session.manager import TranscriptManager
from chatwarden.utils.helpers import truncate


class ContextBuilder:
    """Builds PromptParts from a Context and the conversation transcript."""

    def __init__(self, config: AIConfig, bot_name: str, transcripts: TranscriptManager) -> None:
        self.config = config
        self.bot_name = bot_name
        self.transcripts = transcripts

    def build_system_prompt(self, ctx: InboundContext) -> str:
        where = "a group chat" if ctx.is_group else "a private chat"
        base = self.config.system_prompt.format(name=self.bot_name)
        return f"{base}\nYou are in {where}. The person talking to you is {ctx.display_name}."

    def build(self, ctx: InboundContext) -> PromptParts:
        lines = self.transcripts.recent(ctx.conversation_id, limit=self.config.prompt_history_lines + 1)
        # The current message was already appended; don't send it twice
        current = truncate(" ".join(ctx.text.split()), self.transcripts.max_chars)
        if lines and lines[-1].text == current:
            lines = lines[:-1]
        keep = max(0, self.config.prompt_history_lines)
        history = [
            truncate(line.render(), self.config.prompt_line_chars)
            for line in (lines[-keep:] if keep else [])
        ]
        message = truncate(ctx.text, self.config.prompt_line_chars * 4)
        if ctx.reply_target and ctx.reply_target.text:
            quoted = truncate(ctx.reply_target.text, self.config.prompt_line_chars)
            message = f'(replying to: "{quoted}")\n{message}'
        return PromptParts(
            system=self.build_system_prompt(ctx),
            message=f"{ctx.display_name}: {message}",
            history=history,
        )
