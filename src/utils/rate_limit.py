"""
Rate Limited Batch Executor

Runs a large list of independent per-item async operations without
saturating the GradSys backend:
- Items run in waves of `concurrency` overlapping requests
- A wave fully settles before the next one starts
- Waves are separated by `inter_wave_delay` seconds
- A failed item is retried up to `max_retries` times (retryable errors only)

One item's failure never fails the batch: every input item gets a
BatchItemResult, in input order.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from config.portal_settings import RATE_LIMITS
from src.utils.errors import TransportError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RateLimitConfig:
    """
    Executor tuning.

    Attributes:
        concurrency: Requests in flight per wave
        inter_wave_delay: Pause between waves (seconds)
        max_retries: Extra attempts after the first failure
        retry_delay: Base backoff before a retry; grows linearly per attempt
        request_timeout: Per-call timeout (seconds), None to disable
    """
    concurrency: int = 20
    inter_wave_delay: float = 1.0
    max_retries: int = 3
    retry_delay: float = 2.0
    request_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.inter_wave_delay < 0 or self.retry_delay < 0:
            raise ValueError("delays cannot be negative")

    @classmethod
    def from_settings(cls, profile: str = "default") -> "RateLimitConfig":
        """Build a config from a named profile in config.portal_settings."""
        return cls(**RATE_LIMITS[profile])


@dataclass
class BatchItemResult(Generic[T, R]):
    """Per-item outcome of a batch run."""
    item: T
    success: bool
    result: R | None = None
    error: BaseException | None = None
    attempts: int = 0


class RateLimitedBatchExecutor:
    """Executes per-item coroutines in delayed, concurrency-bounded waves."""

    def __init__(self, config: RateLimitConfig | None = None, sleep: SleepFn | None = None) -> None:
        self.config = config or RateLimitConfig.from_settings()
        self._sleep = sleep or asyncio.sleep

    async def run(
        self,
        items: Iterable[T],
        operation: Callable[[T], Awaitable[R]],
    ) -> list[BatchItemResult[T, R]]:
        """
        Run `operation` for every item.

        Returns:
            One BatchItemResult per item, in input order. Failures are
            recorded on the result, never raised.
        """
        items = list(items)
        if not items:
            return []

        size = self.config.concurrency
        total_waves = math.ceil(len(items) / size)
        logger.info(
            "Starting batch of %d items (%d per wave, %d waves)",
            len(items), size, total_waves,
        )

        results: list[BatchItemResult[T, R]] = []
        for wave_number, start in enumerate(range(0, len(items), size), start=1):
            wave = items[start:start + size]
            logger.debug("Processing wave %d/%d (%d items)", wave_number, total_waves, len(wave))

            results.extend(await asyncio.gather(*(self._run_item(item, operation) for item in wave)))

            if wave_number < total_waves and self.config.inter_wave_delay > 0:
                await self._sleep(self.config.inter_wave_delay)

        failures = sum(1 for result in results if not result.success)
        logger.info("Batch completed: %d successful, %d failed", len(results) - failures, failures)
        return results

    async def _run_item(self, item: T, operation: Callable[[T], Awaitable[R]]) -> BatchItemResult[T, R]:
        attempts = 0
        while True:
            attempts += 1
            try:
                result = await self._call(operation, item)
                return BatchItemResult(item=item, success=True, result=result, attempts=attempts)
            except Exception as error:
                if attempts <= self.config.max_retries and is_retryable(error):
                    logger.debug(
                        "Retrying item %r (attempt %d/%d): %s",
                        item, attempts + 1, self.config.max_retries + 1, error,
                    )
                    await self._sleep(self.config.retry_delay * attempts)
                    continue
                logger.warning("Item %r failed after %d attempt(s): %s", item, attempts, error)
                return BatchItemResult(item=item, success=False, error=error, attempts=attempts)

    async def _call(self, operation: Callable[[T], Awaitable[R]], item: T) -> R:
        timeout = self.config.request_timeout
        if timeout is None:
            return await operation(item)
        try:
            return await asyncio.wait_for(operation(item), timeout)
        except asyncio.TimeoutError as error:
            raise TransportError(f"Operation timed out after {timeout}s") from error


async def execute_with_retry(
    call: Callable[[], Awaitable[R]],
    max_retries: int = RATE_LIMITS["default"]["max_retries"],
    retry_delay: float = RATE_LIMITS["default"]["retry_delay"],
    sleep: SleepFn | None = None,
) -> R:
    """
    Run a single call, retrying retryable failures with linear backoff.

    Non-retryable errors propagate immediately; the last error propagates
    once retries are exhausted.
    """
    sleep = sleep or asyncio.sleep
    attempt = 0
    while True:
        try:
            return await call()
        except Exception as error:
            if attempt >= max_retries or not is_retryable(error):
                raise
            attempt += 1
            logger.warning("Call failed (attempt %d/%d), retrying: %s", attempt, max_retries + 1, error)
            await sleep(retry_delay * attempt)
