"""Bounded exponential-backoff retry around remote calls.

Every attempt runs under its own timeout. Only transport failures,
timeouts and HTTP 429/503 are retried; anything else propagates on the
first attempt. When the budget is spent the last failure is re-raised
unchanged so callers can tell the causes apart.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx

from julesbridge.api.errors import JulesApiError
from julesbridge.config import ApiConfig
from julesbridge.logging import get_logger

log = get_logger("api.retry")

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503})

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one logical call."""

    max_attempts: int = 3
    base_delay: float = 1.0
    timeout: float | None = 30.0

    @classmethod
    def from_config(cls, config: ApiConfig) -> RetryPolicy:
        return cls(
            max_attempts=max(1, config.max_attempts),
            base_delay=config.base_delay,
            timeout=config.timeout,
        )

    @classmethod
    def single_attempt(cls, timeout: float | None = 30.0) -> RetryPolicy:
        return cls(max_attempts=1, base_delay=0.0, timeout=timeout)

    def delay(self, retry_index: int) -> float:
        """Backoff before retry ``retry_index`` (0 for the first retry)."""
        return self.base_delay * (2**retry_index)

    def schedule(self) -> list[float]:
        return [self.delay(i) for i in range(self.max_attempts - 1)]


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TransportError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, JulesApiError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    description: str = "request",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` under ``policy``.

    ``operation`` is a zero-argument factory; it is called once per attempt
    so every attempt gets a fresh coroutine.
    """
    attempts = max(1, policy.max_attempts)
    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except Exception as e:
            if not is_retryable(e):
                raise
            if attempt + 1 >= attempts:
                log.warning(
                    "%s failed after %d attempt(s): %s",
                    description,
                    attempts,
                    type(e).__name__,
                )
                raise
            delay = policy.delay(attempt)
            log.info(
                "%s attempt %d/%d failed (%s), retrying in %.2fs",
                description,
                attempt + 1,
                attempts,
                type(e).__name__,
                delay,
            )
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
