# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - RETRY HELPERS
# =============================================================================
"""
Retry Module

Exponential-backoff retry for flaky external operations. The delay before
attempt ``n + 1`` is ``delay_ms * backoff ** (n - 1)``.

Named profiles:
    mcp_call         3 attempts, 1000 ms, x2     (n8n REST calls)
    agent_invoke     2 attempts, 2000 ms, x1.5   (LLM provider calls)
    session_persist  5 attempts,  500 ms, x1.2   (remote session writes)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

OnRetry = Callable[[int, Exception], None]


# =============================================================================
# EXCEPTIONS
# =============================================================================

class RetryExhaustedError(Exception):
    """Raised when every attempt failed."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Operation failed after {attempts} attempts: {last_error}")


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    delay_ms: int = 1000
    backoff: float = 2.0

    def to_kwargs(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "delay_ms": self.delay_ms,
            "backoff": self.backoff,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            delay_ms=int(data.get("delay_ms", 1000)),
            backoff=float(data.get("backoff", 2.0)),
        )


RETRY_CONFIGS: Dict[str, RetryConfig] = {
    "mcp_call": RetryConfig(max_attempts=3, delay_ms=1000, backoff=2.0),
    "agent_invoke": RetryConfig(max_attempts=2, delay_ms=2000, backoff=1.5),
    "session_persist": RetryConfig(max_attempts=5, delay_ms=500, backoff=1.2),
}


def compute_delay_ms(attempt: int, delay_ms: int, backoff: float) -> float:
    """Delay after the given (1-based) failed attempt."""
    return delay_ms * backoff ** (attempt - 1)


# =============================================================================
# RETRY
# =============================================================================

async def retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay_ms: int = 1000,
    backoff: float = 2.0,
    on_retry: Optional[OnRetry] = None,
) -> T:
    """
    Await ``fn()`` until it succeeds or attempts run out.

    Raises:
        RetryExhaustedError: After the last failed attempt
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            if attempt == max_attempts:
                break
            if on_retry:
                on_retry(attempt, e)
            delay = compute_delay_ms(attempt, delay_ms, backoff)
            logger.debug(f"Attempt {attempt}/{max_attempts} failed ({e}), retrying in {delay:.0f}ms")
            await asyncio.sleep(delay / 1000)

    raise RetryExhaustedError(max_attempts, last_error)


def retry_sync(
    fn: Callable[[], T],
    max_attempts: int = 3,
    delay_ms: int = 1000,
    backoff: float = 2.0,
    on_retry: Optional[OnRetry] = None,
) -> T:
    """Blocking counterpart of :func:`retry` for thread-bound callers."""
    last_error: Optional[Exception] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except Exception as e:
            last_error = e
            if attempt == max_attempts:
                break
            if on_retry:
                on_retry(attempt, e)
            delay = compute_delay_ms(attempt, delay_ms, backoff)
            logger.debug(f"Attempt {attempt}/{max_attempts} failed ({e}), retrying in {delay:.0f}ms")
            time.sleep(delay / 1000)

    raise RetryExhaustedError(max_attempts, last_error)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "RetryExhaustedError",
    "RetryConfig",
    "RETRY_CONFIGS",
    "compute_delay_ms",
    "retry",
    "retry_sync",
]
