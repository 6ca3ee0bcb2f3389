"""Generative text service contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


class GenerationError(Exception):
    """The generative service failed (transport, empty or malformed output)."""


class QuotaExceededError(GenerationError):
    """The generative service refused because of quota / rate limits."""


@dataclass
class PromptParts:
    """Prompt in, text out. `history` is oldest-first."""
    system: str
    message: str
    history: list[str] = field(default_factory=list)

    def to_messages(self) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self.system}]
        if self.history:
            messages.append({
                "role": "user",
                "content": "[Recent conversation]\n" + "\n".join(self.history),
            })
        messages.append({"role": "user", "content": self.message})
        return messages


@dataclass
class GenerationResult:
    text: str = ""
    blocked_reason: str | None = None
    model: str = ""

    @property
    def blocked(self) -> bool:
        return self.blocked_reason is not None


class GenerativeProvider(ABC):
    """Abstract generative text service."""

    @abstractmethod
    async def generate(self, parts: PromptParts) -> GenerationResult:
        """Generate a reply.

        Returns a result whose `blocked_reason` is set when the service
        withheld output for safety reasons. Raises GenerationError (or
        QuotaExceededError) on failure.
        """
