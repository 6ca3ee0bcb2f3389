"""LiteLLM provider implementation.

Includes model fallback rotation: on timeout or error, automatically retries
once with the next model in the fallback list. Safety-filtered completions
(finish_reason "content_filter") come back as blocked results, not errors.
"""

import asyncio
import time as _time
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from chatwarden.config.schema import AIConfig
from chatwarden.providers.base import (
    GenerationError,
    GenerationResult,
    GenerativeProvider,
    PromptParts,
    QuotaExceededError,
)

# How long to wait before probing the primary model again after a rotation
RECOVERY_COOLDOWN: float = 300.0

_BLOCK_FINISH_REASONS = {"content_filter", "safety", "blocked"}


class LiteLLMProvider(GenerativeProvider):
    """Generative provider backed by LiteLLM (Gemini, OpenAI, OpenRouter, ...)."""

    def __init__(self, config: AIConfig) -> None:
        self.config = config
        self.default_model = config.model
        self._timeout = config.timeout

        # Primary first, fallbacks after
        self._models = [config.model] + [m for m in config.fallback_models if m != config.model]
        self._model_index = 0
        self._model_failures: dict[str, int] = {}
        self._last_rotation_time: float = 0.0

        litellm.suppress_debug_info = True
        litellm.drop_params = True

    # ── Model fallback rotation ──────────────────────────────────────

    def _current_model(self) -> str:
        if len(self._models) > 1 and self._model_index != 0:
            # Snap back to primary once the cooldown has elapsed
            if _time.time() - self._last_rotation_time >= RECOVERY_COOLDOWN:
                logger.info(f"LLM recovery: retrying primary {self._models[0]}")
                self._model_index = 0
        return self._models[self._model_index % len(self._models)]

    def _rotate_model(self) -> None:
        if len(self._models) < 2:
            return
        old = self._models[self._model_index]
        self._model_index = (self._model_index + 1) % len(self._models)
        self._last_rotation_time = _time.time()
        logger.warning(f"LLM fallback: rotated from {old} → {self._models[self._model_index]}")

    def _record_failure(self, model: str) -> None:
        self._model_failures[model] = self._model_failures.get(model, 0) + 1

    # ── Calls ────────────────────────────────────────────────────────

    async def _attempt(self, model: str, parts: PromptParts) -> GenerationResult:
        """Make a single LLM call with timeout. Raises on failure."""
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": parts.to_messages(),
            "max_tokens": max(1, self.config.max_tokens),
            "temperature": self.config.temperature,
        }
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base

        response = await asyncio.wait_for(acompletion(**kwargs), timeout=self._timeout)
        return self._parse_response(response, model)

    async def generate(self, parts: PromptParts) -> GenerationResult:
        """Generate with one fallback retry.

        Quota errors are not retried on another model of the same provider
        account; they propagate as QuotaExceededError.
        """
        current = self._current_model()
        try:
            result = await self._attempt(current, parts)
            self._model_failures[current] = 0
            return result
        except litellm.RateLimitError as e:
            self._record_failure(current)
            raise QuotaExceededError(f"quota exceeded on {current}: {e}") from e
        except asyncio.TimeoutError:
            logger.warning(f"LLM timeout after {self._timeout}s on {current}")
            first_error: Exception = GenerationError(f"timeout on {current}")
        except Exception as e:
            logger.warning(f"LLM error on {current}: {e}")
            first_error = e
        self._record_failure(current)
        self._rotate_model()

        fallback = self._current_model()
        if fallback == current:
            raise GenerationError(str(first_error)) from first_error

        try:
            logger.info(f"LLM fallback retry with {fallback}")
            result = await self._attempt(fallback, parts)
            self._model_failures[fallback] = 0
            return result
        except litellm.RateLimitError as e:
            self._record_failure(fallback)
            raise QuotaExceededError(f"quota exceeded on {fallback}: {e}") from e
        except asyncio.TimeoutError as e:
            self._record_failure(fallback)
            self._rotate_model()
            raise GenerationError(f"timeout on both {current} and {fallback}") from e
        except Exception as e:
            self._record_failure(fallback)
            self._rotate_model()
            raise GenerationError(f"{fallback}: {e}") from e

    def _parse_response(self, response: Any, model: str) -> GenerationResult:
        """Parse a LiteLLM response into a GenerationResult."""
        if not getattr(response, "choices", None):
            raise GenerationError(f"{model} returned no choices")
        choice = response.choices[0]
        finish_reason = (choice.finish_reason or "stop").lower()
        content = (getattr(choice.message, "content", None) or "").strip()
        if finish_reason in _BLOCK_FINISH_REASONS:
            return GenerationResult(text="", blocked_reason=finish_reason, model=model)
        return GenerationResult(text=content, model=model)

    @property
    def failures(self) -> dict[str, int]:
        return dict(self._model_failures)
