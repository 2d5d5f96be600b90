"""Retry with exponential backoff and a pluggable error classifier.

One utility shared by the Source Reader path (category warmer) and the
Cache Writer, parameterized by ``(max_retries, base_delay, classifier)``.

Example:
    >>> from warmspine.execution.retry import ExponentialBackoff, RetryContext
    >>>
    >>> strategy = ExponentialBackoff(max_retries=3, base_delay=0.2, jitter=False)
    >>> [strategy.next_delay(a) for a in range(3)]
    [0.2, 0.4, 0.8]
    >>> RetryContext(strategy).run(lambda: "ok")
    'ok'
"""

from __future__ import annotations

import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from warmspine.core.errors import is_retryable

T = TypeVar("T")

RetryCallback = Callable[[int, Exception, float], None]


class RetryStrategy(ABC):
    """Decides whether a failed call gets another attempt, and when."""

    @abstractmethod
    def next_delay(self, retry: int) -> float:
        """Seconds to wait before retry number ``retry`` (zero-based)."""
        ...

    @abstractmethod
    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """``attempt`` counts the calls made so far, including the first."""
        ...


@dataclass
class ExponentialBackoff(RetryStrategy):
    """``base_delay * 2**retry``, capped at ``max_delay``.

    Attributes:
        max_retries: Retries after the first call (total calls = max_retries + 1)
        base_delay: Delay before the first retry
        max_delay: Cap for any single delay
        jitter: Spread delays by ``jitter_range`` so parallel warmers
            do not hammer a recovering store in lockstep
        jitter_range: Fraction of the delay used as jitter (0.0-1.0)
        classifier: Decides whether an error is transient
    """

    max_retries: int = 3
    base_delay: float = 0.2
    max_delay: float = 5.0
    jitter: bool = False
    jitter_range: float = 0.25
    classifier: Callable[[Exception], bool] = is_retryable

    def next_delay(self, retry: int) -> float:
        delay = min(self.base_delay * (2**retry), self.max_delay)
        if self.jitter:
            spread = delay * self.jitter_range
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        if attempt > self.max_retries:
            return False
        return error is None or self.classifier(error)


@dataclass
class NoRetry(RetryStrategy):
    """Single attempt; every failure propagates."""

    def next_delay(self, retry: int) -> float:
        return 0.0

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        return False


@dataclass
class RetryContext:
    """Retry state for one logical operation (one batch read, one key write).

    Example:
        >>> ctx = RetryContext(ExponentialBackoff(max_retries=3))
        >>> ctx.run(store.set_with_expiry, "catalog:1", b"{}", 3600)
        >>> ctx.attempts
        1
    """

    strategy: RetryStrategy
    on_retry: RetryCallback | None = None
    sleep: Callable[[float], None] = time.sleep
    attempts: int = field(default=0, init=False)
    errors: list[Exception] = field(default_factory=list, init=False)

    @property
    def retries(self) -> int:
        return max(0, self.attempts - 1)

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``func`` until it succeeds or the strategy gives up.

        Raises:
            The last error, unchanged, once no attempt is left or the
            classifier calls it permanent.
        """
        while True:
            self.attempts += 1
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                self.errors.append(exc)
                if not self.strategy.should_retry(self.attempts, exc):
                    raise
                delay = self.strategy.next_delay(self.attempts - 1)
                if self.on_retry is not None:
                    self.on_retry(self.attempts, exc, delay)
                self.sleep(delay)


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "RetryCallback",
]
