"""LLMProvider — completion calls through LiteLLM with rate-limit retry.

Only rate-limit responses are retried: three attempts in total, waiting
2 s and then 4 s between them (the delay doubles, no jitter). Every other
failure is classified and raised immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from promptbench.errors import AuthError, QuotaExceeded, RateLimited, UpstreamError
from promptbench.models import LLMProviderConfig

logger = logging.getLogger("promptbench.llm_provider")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass
class CompletionResult:
    content: str
    model: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    attempts: int = 1
    elapsed_ms: int = 0


def _status_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def is_quota_error(exc: BaseException) -> bool:
    return "insufficient_quota" in str(exc).lower()


def is_rate_limit(exc: BaseException) -> bool:
    """429s and LiteLLM RateLimitError, except quota exhaustion (which shares the 429 status)."""
    import litellm

    if is_quota_error(exc):
        return False
    if isinstance(exc, litellm.RateLimitError) or _status_of(exc) == 429:
        return True
    return "rate limit" in str(exc).lower()


def is_auth_error(exc: BaseException) -> bool:
    import litellm

    if isinstance(exc, litellm.AuthenticationError) or _status_of(exc) == 401:
        return True
    text = str(exc).lower()
    return "invalid_api_key" in text or "unauthorized" in text


def classify_error(exc: BaseException, elapsed_ms: int = 0, attempts: int = 1) -> UpstreamError:
    """Map a raw completion error onto the upstream error taxonomy."""
    if is_quota_error(exc):
        error_cls: type[UpstreamError] = QuotaExceeded
    elif is_auth_error(exc):
        error_cls = AuthError
    elif is_rate_limit(exc):
        error_cls = RateLimited
    else:
        error_cls = UpstreamError
    return error_cls(details=str(exc), elapsed_ms=elapsed_ms, attempts=attempts)


class LLMProvider:
    """Completion caller with bounded rate-limit retry.

    Usage:
        provider = LLMProvider(LLMProviderConfig(model="gpt-4o-mini"))
        result = await provider.complete("Analyze this", system_prompt="You are an analyst.")
        print(result.content, result.tokens_used, result.cost_usd)
    """

    def __init__(
        self,
        config: LLMProviderConfig,
        api_key: str | None = None,
        sleep: SleepFn | None = None,
    ):
        self.config = config
        self.api_key = api_key
        self._sleep = sleep or asyncio.sleep

    async def complete(
        self,
        user_message: str,
        system_prompt: str = "",
        **kwargs: Any,
    ) -> CompletionResult:
        """Send one completion request, retrying on rate limits.

        Raises:
            RateLimited: still rate-limited after ``max_attempts`` attempts.
            AuthError, QuotaExceeded, UpstreamError: on the first such failure.
        """
        import litellm

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})

        completion_kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            **kwargs,
        }
        if self.config.timeout is not None:
            completion_kwargs["timeout"] = self.config.timeout
        if self.api_key:
            completion_kwargs["api_key"] = self.api_key

        delay = self.config.retry_delay
        max_attempts = self.config.max_attempts
        started = time.perf_counter()

        for attempt in range(1, max_attempts + 1):
            try:
                resp = await litellm.acompletion(**completion_kwargs)
            except Exception as e:
                if not is_rate_limit(e) or attempt == max_attempts:
                    elapsed_ms = _elapsed_ms(started)
                    logger.error(f"Completion failed on attempt {attempt}/{max_attempts} after {elapsed_ms}ms: {e}")
                    raise classify_error(e, elapsed_ms=elapsed_ms, attempts=attempt) from e
                logger.warning(f"Rate limit hit, retrying in {delay:.1f}s (attempt {attempt}/{max_attempts})")
                await self._sleep(delay)
                delay *= 2
                continue

            content = resp.choices[0].message.content or ""
            logger.debug(f"Completion from {self.config.model} (attempt {attempt}): {content[:100]}...")
            return CompletionResult(
                content=content,
                model=_model_of(resp, self.config.model),
                tokens_used=_tokens_of(resp),
                cost_usd=_cost_of(resp),
                attempts=attempt,
                elapsed_ms=_elapsed_ms(started),
            )

        raise UpstreamError(details="no completion attempts were made", elapsed_ms=_elapsed_ms(started), attempts=0)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _model_of(resp: Any, default: str) -> str:
    model = getattr(resp, "model", None)
    return model if isinstance(model, str) and model else default


def _tokens_of(resp: Any) -> int:
    usage = getattr(resp, "usage", None)
    total = getattr(usage, "total_tokens", 0) if usage else 0
    return total if isinstance(total, int) else 0


def _cost_of(resp: Any) -> float:
    """Best-effort cost via LiteLLM's price table; unknown models cost 0.0."""
    import litellm

    try:
        cost = litellm.completion_cost(completion_response=resp)
    except Exception as e:
        logger.debug(f"Could not compute completion cost: {e}")
        return 0.0
    return float(cost) if isinstance(cost, (int, float)) else 0.0
