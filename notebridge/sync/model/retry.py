"""
Retry with exponential backoff for remote operations.

Only exceptions listed in ``retry_on`` are retried; everything else propagates on the first attempt. Once the
attempts are exhausted, the last retryable exception is raised again.
"""

from __future__ import annotations

import logging
import random
import time
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

from notebridge.sync.model.errors import TransientNetworkError

T = TypeVar("T")


def backoff_delay(attempt: int,
                  base_delay: float = 0.5,
                  max_delay: float = 8.0,
                  exponential_base: float = 2.0,
                  jitter: bool = True) -> float:
    """
    Get the delay before the next attempt.

    :param attempt: zero-based index of the attempt which just failed.
    :param base_delay: delay after the first failure, in seconds.
    :param max_delay: upper bound of the delay, in seconds.
    :param exponential_base: growth factor of the delay.
    :param jitter: if true, add up to half of the gap to the next attempt's delay. Delays stay strictly increasing
        below ``max_delay``.
    :return: the delay in seconds.
    """
    delay = base_delay * (exponential_base ** attempt)
    if jitter:
        delay *= 1 + random.random() * (exponential_base - 1) / 2
    return min(delay, max_delay)


def with_retry(
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: Tuple[Type[BaseException], ...] = (TransientNetworkError,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that adds retry with exponential backoff.

    :param max_retries: number of retries after the first attempt.
    :param base_delay: initial delay in seconds.
    :param max_delay: maximum delay in seconds.
    :param exponential_base: base for exponential backoff.
    :param jitter: add randomness to the delay.
    :param retry_on: exception types which are retried.
    :param sleep: function used to wait between attempts.
    :return: decorated function with retry logic.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempts = max_retries + 1
            last_exception: Optional[BaseException] = None
            for attempt in range(attempts):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt < attempts - 1:
                        delay = backoff_delay(attempt, base_delay, max_delay, exponential_base, jitter)
                        logging.warning('Remote operation failed (attempt {0}/{1}): {2}. Retrying in {3:.1f}s...'.format(
                            attempt + 1, attempts, e, delay))
                        sleep(delay)
                    else:
                        logging.error('Remote operation failed after {0} attempts: {1}'.format(attempts, e))
            raise last_exception

        return wrapper

    return decorator
