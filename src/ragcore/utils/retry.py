"""
Retry logic with exponential backoff for backend calls.

Provides an asyncio retry loop for operations that may fail transiently,
such as embedding or completion requests against a remote provider.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type


logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """
    Backoff settings for transient backend failures.

    Attributes:
        max_attempts: Total tries, the first call included
        initial_delay_ms: Wait before the second try
        max_delay_ms: Upper bound on any single wait
        backoff_multiplier: Growth factor applied per failed try
        jitter: Randomize each wait by up to 25% either way
    """
    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 4000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        """Create from dictionary."""
        return cls(
            max_attempts=int(data.get("max_attempts", 3)),
            initial_delay_ms=float(data.get("initial_delay_ms", 250.0)),
            max_delay_ms=float(data.get("max_delay_ms", 4000.0)),
            backoff_multiplier=float(data.get("backoff_multiplier", 2.0)),
            jitter=bool(data.get("jitter", True)),
        )


@dataclass
class RetryResult:
    """
    Outcome of retry_async.

    Attributes:
        success: True if some attempt returned
        result: Value returned by the successful attempt
        attempts: Tries made
        error: Last exception when every try failed
        error_history: Message of each failed try, oldest first
    """
    success: bool
    result: Any = None
    attempts: int = 0
    error: Optional[Exception] = None
    error_history: List[str] = field(default_factory=list)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Seconds to wait after the given failed attempt (0-based).

    The base wait grows geometrically and is capped at max_delay_ms before
    jitter is applied.
    """
    base_ms = config.initial_delay_ms * config.backoff_multiplier ** attempt
    delay_ms = min(base_ms, config.max_delay_ms)
    if config.jitter:
        delay_ms *= random.uniform(0.75, 1.25)
    return delay_ms / 1000.0


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    config: RetryConfig,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryResult:
    """
    Await an operation with retry and exponential backoff.

    Exceptions outside ``retry_on`` propagate. Errors rejected by
    ``should_retry`` end the loop without further attempts.

    Args:
        operation: Zero-argument coroutine factory
        config: Retry configuration
        retry_on: Exception types eligible for retry
        should_retry: Optional predicate refining which errors are retried
        operation_name: Name for logging
        sleep: Awaitable sleep function (injectable for tests)

    Returns:
        RetryResult with success/failure info; ``error`` holds the last
        exception raised by the operation when it failed
    """
    error_history: List[str] = []
    last_error: Optional[Exception] = None
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        try:
            logger.debug(f"{operation_name}: attempt {attempt + 1}/{attempts}")
            result = await operation()

            if attempt > 0:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")

            return RetryResult(
                success=True,
                result=result,
                attempts=attempt + 1,
                error_history=error_history,
            )

        except retry_on as e:
            error_history.append(str(e))
            last_error = e

            if should_retry is not None and not should_retry(e):
                logger.debug(f"{operation_name} failed with non-retryable error: {e}")
                return RetryResult(
                    success=False,
                    attempts=attempt + 1,
                    error=e,
                    error_history=error_history,
                )

            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{attempts}: {e}"
            )

            # Don't sleep after the last attempt
            if attempt < attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.debug(f"Backing off for {delay:.3f}s before retry")
                await sleep(delay)

    logger.error(f"{operation_name} exhausted all {attempts} attempts")

    return RetryResult(
        success=False,
        attempts=attempts,
        error=last_error,
        error_history=error_history,
    )
