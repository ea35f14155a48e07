"""
Resilience helpers for outbound calls.

- ``async_retry``: re-run a coroutine on retryable errors with backoff
  (LLM completions)
- ``CircuitBreaker``: stop calling an upstream that keeps failing (every
  ``BaseAPIClient``)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from .exceptions import RateLimitError, get_retry_delay, is_retryable_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


# =============================================================================
# Retry Decorator
# =============================================================================

def async_retry(
    max_attempts: int = 3,
    retryable_check: Callable[[Exception], bool] = is_retryable_error,
    base_delay: float = 1.0,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retry an async function while ``retryable_check`` accepts the error.

    The wait before retry ``n`` (0-based) is ``get_retry_delay(error, n,
    base_delay)``: exponential, jittered, and stretched to the error's
    ``retry_after`` when it carries one. The last error is re-raised.

    Example:
        @async_retry(max_attempts=3)
        async def generate(prompt: str) -> str:
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    attempt += 1
                    if attempt >= max_attempts or not retryable_check(e):
                        raise
                    delay = get_retry_delay(e, attempt - 1, base_delay)
                    logger.warning(
                        f"{func.__name__} failed ({e}); attempt {attempt + 1}/{max_attempts} in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


# =============================================================================
# Circuit Breaker
# =============================================================================

class CircuitBreaker:
    """
    Three-state circuit breaker used as an async context manager.

    closed: calls pass; each failure adds one, each success removes one.
    open: calls fail fast with ``RateLimitError`` until ``recovery_timeout``
    has passed since the last failure.
    half_open: up to ``half_open_max_calls`` trial calls; a successful trial
    closes the circuit, a failed one counts like any other failure.

    Example:
        breaker = CircuitBreaker(failure_threshold=5)
        async with breaker:
            response = await client.get(url)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        half_open_max_calls: int = 3,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._state = CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> str:
        return self._state

    def _cooling_down(self) -> bool:
        if self._last_failure_time is None:
            return False
        return time.monotonic() - self._last_failure_time <= self.recovery_timeout

    @property
    def is_open(self) -> bool:
        """True while calls are being rejected outright."""
        return self._state == OPEN and (self._last_failure_time is None or self._cooling_down())

    async def __aenter__(self) -> CircuitBreaker:
        async with self._lock:
            if self._state == OPEN:
                if self.is_open:
                    raise RateLimitError("Circuit breaker is open", retry_after=self.recovery_timeout)
                self._state = HALF_OPEN
                self._half_open_calls = 0

            if self._state == HALF_OPEN:
                if self._half_open_calls >= self.half_open_max_calls:
                    raise RateLimitError(
                        "Circuit breaker is half-open and its trial budget is spent",
                        retry_after=self.recovery_timeout / 2,
                    )
                self._half_open_calls += 1
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        async with self._lock:
            if exc_val is None:
                self._record_success()
            else:
                self._record_failure()

    def _record_success(self) -> None:
        if self._state == HALF_OPEN:
            self._state = CLOSED
            self._failure_count = 0
            logger.info("Circuit breaker closed after a successful trial call")
        elif self._failure_count:
            self._failure_count -= 1

    def _record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        if self._failure_count >= self.failure_threshold and self._state != OPEN:
            self._state = OPEN
            logger.warning(f"Circuit breaker opened after {self._failure_count} failures")
