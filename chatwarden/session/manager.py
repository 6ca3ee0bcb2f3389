"""Rolling per-conversation transcripts.

Each conversation keeps its most recent lines only; the oldest drop off
first. Transcripts feed the prompt builder and are never persisted.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field

from chatwarden.utils.helpers import truncate


@dataclass(frozen=True)
class TranscriptLine:
    author: str
    text: str
    timestamp: float = field(default_factory=time.time)
    is_bot: bool = False

    def render(self) -> str:
        return f"{self.author}: {self.text}"


class TranscriptManager:
    """conversation_id -> bounded deque of TranscriptLine."""

    def __init__(self, max_lines: int = 20, max_chars: int = 500) -> None:
        self.max_lines = max_lines
        self.max_chars = max_chars
        self._transcripts: dict[str, deque[TranscriptLine]] = {}

    def append(self, conversation_id: str, author: str, text: str, *, is_bot: bool = False) -> None:
        text = " ".join(text.split())
        if not text:
            return
        transcript = self._transcripts.get(conversation_id)
        if transcript is None:
            transcript = self._transcripts[conversation_id] = deque(maxlen=self.max_lines)
        transcript.append(TranscriptLine(author, truncate(text, self.max_chars), is_bot=is_bot))

    def recent(self, conversation_id: str, limit: int | None = None) -> list[TranscriptLine]:
        lines = list(self._transcripts.get(conversation_id, ()))
        if limit is not None:
            lines = lines[-limit:] if limit > 0 else []
        return lines

    def render(self, conversation_id: str, limit: int | None = None, line_chars: int | None = None) -> list[str]:
        rendered = [line.render() for line in self.recent(conversation_id, limit)]
        if line_chars:
            rendered = [truncate(r, line_chars) for r in rendered]
        return rendered

    def clear(self, conversation_id: str) -> None:
        self._transcripts.pop(conversation_id, None)

    def __len__(self) -> int:
        return len(self._transcripts)
