"""Token bucket rate limiter, exponential backoff and an async retry wrapper.

The limiter keeps one bucket per identifier. Buckets refill continuously
(``elapsed_ms * refill_rate``) before every evaluation, so token counts are
fractional; a request needs at least one whole token.

Backoff is only used to space retry attempts, never for limiter waits.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class TokenBucket:
    tokens: float
    capacity: float
    refill_rate: float  # tokens per millisecond
    last_refill: float  # clock value in milliseconds


@dataclass(frozen=True)
class RateLimitStatus:
    requests_remaining: int
    reset_at: datetime
    retry_after_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "requests_remaining": self.requests_remaining,
            "window_reset_at": self.reset_at.isoformat(),
            "retry_after_ms": self.retry_after_ms,
        }


class RateLimiter:
    """Continuous-refill token bucket keyed by identifier.

    Args:
        max_requests: Bucket capacity and number of tokens refilled per window.
        window_ms: Window length in milliseconds.
        clock: Millisecond clock (monotonic by default).
        sleep: Coroutine taking seconds (``asyncio.sleep`` by default).
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int = 60_000,
        *,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self._buckets: Dict[str, TokenBucket] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_bucket(self, identifier: str) -> TokenBucket:
        bucket = self._buckets.get(identifier)
        if bucket is None:
            bucket = TokenBucket(
                tokens=float(self.max_requests),
                capacity=float(self.max_requests),
                refill_rate=self.max_requests / self.window_ms,
                last_refill=self._clock(),
            )
            self._buckets[identifier] = bucket
        return bucket

    def _refill(self, bucket: TokenBucket) -> None:
        now = self._clock()
        elapsed = max(0.0, now - bucket.last_refill)
        bucket.tokens = min(bucket.capacity, bucket.tokens + elapsed * bucket.capacity / self.window_ms)
        bucket.last_refill = now

    def _wait_ms(self, bucket: TokenBucket) -> int:
        if bucket.tokens >= 1:
            return 0
        return int(math.ceil((1 - bucket.tokens) * self.window_ms / bucket.capacity))

    @staticmethod
    def _consume(bucket: TokenBucket) -> None:
        if bucket.tokens < 1:
            raise RuntimeError(f"Token bucket overdrawn (tokens={bucket.tokens:.4f})")
        bucket.tokens -= 1

    def check_limit(self, identifier: str) -> bool:
        """Consume a token if one is available; never blocks."""
        bucket = self._get_bucket(identifier)
        self._refill(bucket)
        if bucket.tokens >= 1:
            self._consume(bucket)
            logger.debug(f"Rate limit check allowed for {identifier}, tokens_remaining={bucket.tokens:.2f}")
            return True
        logger.warning(
            f"Rate limit hit for {identifier}, retry_after_ms={self._wait_ms(bucket)}",
            extra={"status": "rate_limited"},
        )
        return False

    async def wait_for_slot(self, identifier: str) -> None:
        """Suspend exactly until a token is available, then consume it.

        Waiters on the same identifier queue on a lock, so each refilled
        token admits exactly one caller.
        """
        lock = self._locks.setdefault(identifier, asyncio.Lock())
        async with lock:
            bucket = self._get_bucket(identifier)
            self._refill(bucket)
            wait_ms = self._wait_ms(bucket)
            while wait_ms > 0:
                logger.info(
                    f"Waiting {wait_ms} ms for rate limit slot ({identifier})",
                    extra={"step": "rate_limit", "duration_ms": wait_ms},
                )
                await self._sleep(wait_ms / 1000.0)
                self._refill(bucket)
                wait_ms = self._wait_ms(bucket)
            self._consume(bucket)

    def get_wait_time(self, identifier: str) -> int:
        bucket = self._get_bucket(identifier)
        self._refill(bucket)
        return self._wait_ms(bucket)

    def get_status(self, identifier: str) -> RateLimitStatus:
        bucket = self._get_bucket(identifier)
        self._refill(bucket)
        wait_ms = self._wait_ms(bucket)
        return RateLimitStatus(
            requests_remaining=int(math.floor(bucket.tokens)),
            reset_at=datetime.now(timezone.utc) + timedelta(milliseconds=wait_ms),
            retry_after_ms=wait_ms,
        )

    def reset(self) -> None:
        """Clear all rate limit state."""
        self._buckets.clear()
        logger.info("Rate limiter reset")


class BackoffStrategy:
    """Exponential backoff with a floor, a ceiling and optional ±25% jitter."""

    JITTER_FRACTION = 0.25

    def __init__(
        self,
        initial_delay_ms: int = 2000,
        max_delay_ms: int = 30000,
        multiplier: float = 2.0,
        jitter: bool = True,
        *,
        rng: Optional[random.Random] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.initial_delay_ms = initial_delay_ms
        self.max_delay_ms = max_delay_ms
        self.multiplier = multiplier
        self.jitter = jitter
        self._rng = rng or random.Random()
        self._sleep = sleep or asyncio.sleep

    def get_delay(self, attempt: int) -> float:
        """Delay in milliseconds before retrying after ``attempt`` (1-based)."""
        exponent = max(0, attempt - 1)
        base = min(self.initial_delay_ms * (self.multiplier ** exponent), self.max_delay_ms)
        if not self.jitter:
            return float(base)
        amount = base * self.JITTER_FRACTION
        return max(0.0, base + self._rng.uniform(-amount, amount))

    async def wait(self, attempt: int) -> float:
        delay = self.get_delay(attempt)
        logger.debug(f"Backoff wait attempt={attempt} delay_ms={delay:.0f}")
        await self._sleep(delay / 1000.0)
        return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    backoff: Optional[BackoffStrategy] = None,
    is_retryable: Callable[[BaseException], bool] = lambda e: False,
    on_retry: Optional[Callable[[int, BaseException], Awaitable[None]]] = None,
) -> T:
    """Run ``operation`` until it succeeds or the attempts are exhausted.

    Before attempt ``n`` (n >= 2) ``on_retry(n, last_error)`` is awaited, then
    the backoff delay for the failed attempt. Non-retryable errors, and the
    error of the final attempt, propagate unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    backoff = backoff or BackoffStrategy()

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= max_attempts or not is_retryable(e):
                raise
            logger.warning(
                f"Operation failed on attempt {attempt}/{max_attempts}, retrying",
                extra={"status": "retry", "error": str(e)},
            )
            next_attempt = attempt + 1
            if on_retry is not None:
                await on_retry(next_attempt, e)
            await backoff.wait(attempt)
            attempt = next_attempt
