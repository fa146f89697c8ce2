"""
Retry with exponential backoff for upstream HTTP calls.

Only failures that are worth repeating (timeouts, dropped connections,
rate limiting, 5xx) should be listed in ``exceptions``; anything else
propagates on the first attempt.
"""

import functools
import time
from typing import Callable, Optional, Tuple, Type

from .errors import TransientUpstreamError


class RetryError(TransientUpstreamError):
    """Raised when all retry attempts are exhausted."""
    pass


# Statuses an upstream may return while it is briefly unavailable
RETRYABLE_HTTP_STATUSES = frozenset({
    408,  # Request Timeout
    429,  # Too Many Requests
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
})


def exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    on_retry: Optional[Callable] = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator for retrying functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts (0 = no retries)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential calculation (delay *= base)
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function(attempt, exception, delay)
        sleep: Function used to wait between attempts

    Raises:
        RetryError: After the last attempt failed with a retryable exception

    Example:
        @exponential_backoff(max_retries=2, base_delay=0.5,
                             exceptions=(requests.exceptions.Timeout,))
        def fetch(url):
            return session.get(url, timeout=15)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            delay = base_delay

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        raise RetryError(
                            f"Failed after {max_retries + 1} attempts: {e}",
                            service=getattr(e, "service", ""),
                            status_code=getattr(e, "status_code", None),
                        ) from e

                    current_delay = min(delay, max_delay)
                    if on_retry:
                        on_retry(attempt + 1, e, current_delay)
                    sleep(current_delay)
                    delay *= exponential_base

        return wrapper
    return decorator


def should_retry_http_status(status_code: int) -> bool:
    """
    Check if HTTP status code indicates a retryable error.

    Args:
        status_code: HTTP status code

    Returns:
        True if should retry
    """
    return status_code in RETRYABLE_HTTP_STATUSES
