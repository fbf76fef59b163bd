"""
Retry logic with exponential backoff for calls to external collaborators.

Used for resource discovery, which fails transiently under throttling.
Resource rotation (uploads, queue posts) has its own attempt loop and only
borrows ``calculate_delay`` from here.
"""

import asyncio
from dataclasses import dataclass
import random
from typing import Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including first try)
        initial_delay_ms: Initial delay in milliseconds
        max_delay_ms: Maximum delay in milliseconds
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Whether to add random jitter to delay
    """

    max_attempts: int = 3
    initial_delay_ms: float = 250.0
    max_delay_ms: float = 4000.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """
    Calculate delay for a given attempt with exponential backoff.

    Args:
        attempt: Attempt number (0-based)
        config: Retry configuration

    Returns:
        Delay in seconds
    """
    delay_ms = min(
        config.initial_delay_ms * (config.backoff_multiplier**attempt),
        config.max_delay_ms,
    )

    # ±25% random variation
    if config.jitter:
        delay_ms *= 0.75 + (random.random() * 0.5)

    return delay_ms / 1000.0


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    operation_name: str = "operation",
) -> T:
    """
    Await an operation, retrying with exponential backoff.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        config: Retry configuration
        retry_on: Exception types that trigger another attempt. Anything else
            propagates immediately.
        operation_name: Name for logging

    Returns:
        The operation's result.

    Raises:
        The last exception once all attempts are exhausted, or the first
        non-retryable exception.
    """
    for attempt in range(config.max_attempts):
        try:
            result = await operation()
            if attempt > 0:
                logger.info(f"{operation_name} succeeded after {attempt + 1} attempts")
            return result
        except retry_on as e:
            if attempt == config.max_attempts - 1:
                logger.error(f"{operation_name} exhausted all {config.max_attempts} attempts: {e}")
                raise
            delay = calculate_delay(attempt, config)
            logger.warning(
                f"{operation_name} failed on attempt {attempt + 1}/{config.max_attempts}: {e}; "
                f"retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)

    # max_attempts < 1
    raise ValueError(f"{operation_name}: max_attempts must be at least 1")
