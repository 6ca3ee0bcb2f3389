"""Generative text providers."""

from chatwarden.providers.base import (
    GenerationError,
    GenerationResult,
    GenerativeProvider,
    PromptParts,
    QuotaExceededError,
)

__all__ = [
    "GenerationError",
    "GenerationResult",
    "GenerativeProvider",
    "PromptParts",
    "QuotaExceededError",
]
