"""
Retry with Exponential Backoff.

Used at the language-model client boundary to absorb transient failures:
- BackoffStrategy: Delay calculation between attempts
- RetryPolicy: How many attempts, which failures qualify, how long to wait
- with_retry: Run an operation, report the outcome as a RetryResult
- retry: Run an operation, re-raise the final error unchanged

Recoverability comes from the error taxonomy by default: timeouts and
rate limits are retried, authentication and malformed responses are not.

Delay before retry n (1-indexed):
    min(initial_delay * multiplier ** (n - 1), max_delay)
"""

from __future__ import annotations

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import is_recoverable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from aipex.config.schemas import RetrySettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Backoff Strategies
# =============================================================================


class BackoffStrategy(ABC):
    """
    Abstract base for backoff delay calculation.

    Backoff strategies determine how long to wait between retry attempts.
    """

    @abstractmethod
    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay before next retry attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)

        Returns:
            Delay in seconds before next attempt
        """
        ...


@dataclass
class NoBackoff(BackoffStrategy):
    """No delay between retries. Handy for tests."""

    def get_delay(self, attempt: int) -> float:
        return 0.0


@dataclass
class ConstantBackoff(BackoffStrategy):
    """Fixed delay between retries."""

    delay: float = 1.0

    def get_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class ExponentialBackoff(BackoffStrategy):
    """
    Exponentially increasing delay between retries.

    delay = initial_delay * (multiplier ^ (attempt - 1)), capped at max_delay

    Jitter is off by default so delays are exactly predictable; turn it
    on when many clients share one upstream.

    Example:
        backoff = ExponentialBackoff(initial_delay=1.0, multiplier=2.0, max_delay=30.0)
        # Attempt 1: 1s, Attempt 2: 2s, Attempt 3: 4s, ...
    """

    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = False
    jitter_factor: float = 0.25  # +/- 25%

    def get_delay(self, attempt: int) -> float:
        delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
            delay = max(0.0, delay)

        return delay


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass
class RetryPolicy:
    """
    Configures retry behavior for an operation.

    Example:
        policy = RetryPolicy(
            max_attempts=3,
            backoff=ExponentialBackoff(initial_delay=1.0),
            should_retry=lambda e: isinstance(e, ConnectionError),
        )
    """

    max_attempts: int = 3
    backoff: BackoffStrategy = field(default_factory=ExponentialBackoff)
    should_retry: Callable[[BaseException], bool] = is_recoverable

    def can_retry(self, attempt: int, error: BaseException) -> bool:
        """
        Determine if another attempt should be made.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)
            error: Exception raised by that attempt
        """
        if attempt >= self.max_attempts:
            return False
        return bool(self.should_retry(error))

    def get_delay(self, attempt: int) -> float:
        """Get delay before the attempt following `attempt`."""
        return self.backoff.get_delay(attempt)

    @classmethod
    def exponential(
        cls,
        *,
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        backoff_multiplier: float = 2.0,
        should_retry: Callable[[BaseException], bool] | None = None,
    ) -> RetryPolicy:
        return cls(
            max_attempts=max_attempts,
            backoff=ExponentialBackoff(
                initial_delay=initial_delay,
                multiplier=backoff_multiplier,
                max_delay=max_delay,
            ),
            should_retry=should_retry or is_recoverable,
        )

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls.exponential(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay,
            max_delay=settings.max_delay,
            backoff_multiplier=settings.backoff_multiplier,
        )


NO_RETRY = RetryPolicy(max_attempts=1)

DEFAULT_RETRY = RetryPolicy.exponential()


# =============================================================================
# Retry Executors
# =============================================================================


@dataclass
class RetryResult:
    """Result of a retry-wrapped operation."""

    success: bool
    result: Any = None
    attempts: int = 0
    total_delay: float = 0.0
    errors: list[BaseException] = field(default_factory=list)

    @property
    def final_error(self) -> BaseException | None:
        """Get the last error encountered."""
        return self.errors[-1] if self.errors else None


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    operation_name: str = "operation",
) -> RetryResult:
    """
    Execute an async operation with retry logic.

    Never raises for operation failures; inspect the RetryResult instead.
    asyncio.CancelledError always propagates.

    Example:
        result = await with_retry(fetch, policy=DEFAULT_RETRY, operation_name="fetch")
        if not result.success:
            logger.error(f"Failed after {result.attempts} attempts")
    """
    errors: list[BaseException] = []
    total_delay = 0.0
    attempt = 0

    while True:
        attempt += 1

        try:
            value = await operation()
            return RetryResult(
                success=True,
                result=value,
                attempts=attempt,
                total_delay=total_delay,
                errors=errors,
            )

        except asyncio.CancelledError:
            raise

        except Exception as e:
            errors.append(e)

            if not policy.can_retry(attempt, e):
                logger.error(
                    f"[retry] {operation_name}: Failed after {attempt} attempts, last error: {e}"
                )
                return RetryResult(
                    success=False,
                    attempts=attempt,
                    total_delay=total_delay,
                    errors=errors,
                )

            delay = policy.get_delay(attempt)
            total_delay += delay
            logger.warning(
                f"[retry] {operation_name}: Attempt {attempt}/{policy.max_attempts} "
                f"failed with {type(e).__name__}: {e}, retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)


async def retry(
    fn: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_multiplier: float = 2.0,
    should_retry: Callable[[BaseException], bool] | None = None,
    policy: RetryPolicy | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Call `fn` until it succeeds or retrying stops making sense.

    The error from the last attempt propagates unchanged, so callers can
    keep matching on the error taxonomy.

    Args:
        fn: Async callable to execute
        max_attempts: Total attempts including the first
        initial_delay: Delay after the first failure (seconds)
        max_delay: Upper bound for any single delay (seconds)
        backoff_multiplier: Growth factor between delays
        should_retry: Predicate on the raised error (default: is_recoverable)
        policy: Prebuilt policy; overrides the individual knobs
        operation_name: Name for logging
    """
    policy = policy or RetryPolicy.exponential(
        max_attempts=max_attempts,
        initial_delay=initial_delay,
        max_delay=max_delay,
        backoff_multiplier=backoff_multiplier,
        should_retry=should_retry,
    )

    result = await with_retry(fn, policy, operation_name=operation_name)
    if result.success:
        return result.result

    # with_retry records the error of every failed attempt, so a failed
    # result always has a final_error
    if result.final_error is None:
        raise RuntimeError(f"{operation_name} failed without recording an error")
    raise result.final_error
