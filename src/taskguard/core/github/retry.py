"""
Bounded retries for issue service calls.

Only transient failures are retried: network errors, timeouts, HTTP 429/5xx
and anything the client already classified as TransientServiceError. The
wait before retry ``n`` (0-based) is ``base_delay * multiplier ** n``,
optionally spread by ±``jitter_ratio`` so parallel runs do not retry in step.

Example:
    >>> @with_retry(RetryConfig(max_retries=2))
    ... def list_projects() -> list[str]:
    ...     ...
"""

from __future__ import annotations

import functools
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from taskguard.core.github.service import TransientServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """How often and how patiently to retry a transient failure."""

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_ratio: float = 0.2

    def __post_init__(self) -> None:
        problems = []
        if self.max_retries < 0:
            problems.append("max_retries must be >= 0")
        if self.base_delay < 0:
            problems.append("base_delay must be >= 0")
        if self.multiplier < 1.0:
            problems.append("multiplier must be >= 1.0")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            problems.append("jitter_ratio must be within [0, 1]")
        if problems:
            raise ValueError("; ".join(problems))

    def calculate_delay(self, attempt: int) -> float:
        """Seconds to wait before retry number *attempt* (0-based)."""
        delay = self.base_delay * self.multiplier**attempt
        if not self.jitter:
            return delay
        spread = delay * self.jitter_ratio
        return max(0.0, random.uniform(delay - spread, delay + spread))


def is_retryable_error(exception: Exception) -> bool:
    if isinstance(exception, TransientServiceError):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        code = exception.response.status_code
        return code == 429 or code >= 500
    # Covers timeouts, connection errors and protocol errors
    return isinstance(exception, httpx.TransportError)


def call_with_retry(func: Callable[..., T], config: RetryConfig, *args: Any, **kwargs: Any) -> T:
    """Call *func* until it succeeds, fails permanently or runs out of retries."""
    name = getattr(func, "__name__", repr(func))
    attempt = 0
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e):
                raise
            if attempt >= config.max_retries:
                logger.warning("%s: giving up after %d retries: %s", name, attempt, e)
                raise
            delay = config.calculate_delay(attempt)
            attempt += 1
            logger.info(
                "%s: transient failure (%s), retry %d/%d in %.2fs",
                name,
                e,
                attempt,
                config.max_retries,
                delay,
            )
            time.sleep(delay)


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of :func:`call_with_retry`."""
    settings = config or RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            return call_with_retry(func, settings, *args, **kwargs)

        return wrapper

    return decorator
