"""
Retry utilities with exponential backoff for async functions.

Used by the fuel economy catalog client: a single catalog ID is retried on
transient transport failures before the crawl gives up on it and moves on.
"""

import asyncio
import logging
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

class RetryableError(Exception):
    """
    Exception that should be retried with exponential backoff.

    Used for transient, temporary failures that may succeed on retry:
    - Catalog server errors (5xx) while the service recovers
    - Network timeouts and intermittent connectivity issues
    - Rate limit responses (429)
    """
    pass

class NonRetryableError(Exception):
    """
    Exception that should NOT be retried.

    Used for permanent, deterministic failures that won't change on retry:
    - No record at the requested catalog ID (404)
    - Payloads that cannot be decoded
    - Records missing their identity fields
    """
    pass

RETRYABLE_EXCEPTIONS = (RetryableError, httpx.TransportError, asyncio.TimeoutError)


def async_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0
) -> Callable[[F], F]:
    """Decorator for async functions with exponential backoff retry logic.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds between retries (default: 1.0)
        max_delay: Maximum delay in seconds between retries (default: 10.0)

    Returns:
        Decorated async function with retry logic

    Example:
        @async_retry(max_attempts=3, base_delay=0.5, max_delay=5.0)
        async def fetch_data():
            return await client.get('/data')

    Error Handling:
    - RetryableError, httpx.TransportError, asyncio.TimeoutError: retried up to max_attempts times
    - NonRetryableError: raised immediately without retry
    - Other exceptions: raised immediately, they are bugs rather than transient failures

    Backoff Strategy:
    - delay = base_delay * (2 ^ attempt), capped at max_delay
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)

                except NonRetryableError:
                    raise

                except RETRYABLE_EXCEPTIONS as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        logger.warning(
                            f"Retry attempt {attempt + 1}/{max_attempts} for {func.__name__}. "
                            f"Error: {str(e)}. Waiting {delay:.2f}s..."
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"All {max_attempts} attempts failed for {func.__name__}. "
                            f"Final error: {str(e)}"
                        )

            raise last_exception if last_exception else RetryableError("Retry failed")

        return wrapper
    return decorator
