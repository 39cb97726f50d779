"""
Retry helpers for transient failures
"""

import asyncio
from functools import wraps
from typing import Awaitable, Callable, Any, Optional, Type, Union, Tuple

from credit_ledger.core.logging import get_logger

logger = get_logger(__name__)

ExceptionTypes = Union[Type[BaseException], Tuple[Type[BaseException], ...]]


async def retry_async_call(
    func: Callable[[], Awaitable[Any]],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: ExceptionTypes = Exception,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
    on_exhausted: Optional[Callable[[BaseException, int], BaseException]] = None,
    operation: Optional[str] = None,
) -> Any:
    """
    Await `func()` until it succeeds or attempts run out

    Args:
        func: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total attempts, including the first
        delay: Initial delay between attempts in seconds
        backoff: Multiplier applied to the delay after each attempt
        exceptions: Exception types eligible for retry
        retry_if: Extra predicate; a caught exception it rejects is raised at once
        on_exhausted: Maps the last exception and attempt count to the error raised
        operation: Name used in log lines
    """
    name = operation or getattr(func, "__name__", "operation")
    current_delay = delay

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except exceptions as e:
            if retry_if is not None and not retry_if(e):
                raise

            if attempt >= max_attempts:
                logger.error(
                    f"All {max_attempts} attempts failed",
                    operation=name,
                    final_error=str(e),
                )
                if on_exhausted is not None:
                    raise on_exhausted(e, attempt) from e
                raise

            logger.warning(
                f"Attempt {attempt} failed, retrying in {current_delay}s",
                operation=name,
                error=str(e),
                attempt=attempt,
                max_attempts=max_attempts,
            )
            await asyncio.sleep(current_delay)
            current_delay *= backoff


def async_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: ExceptionTypes = Exception,
    retry_if: Optional[Callable[[BaseException], bool]] = None,
):
    """
    Retry decorator for asynchronous functions

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries in seconds
        backoff: Multiplier for delay on each retry
        exceptions: Exception types to retry on
        retry_if: Optional predicate deciding whether a caught exception is retryable
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            return await retry_async_call(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                delay=delay,
                backoff=backoff,
                exceptions=exceptions,
                retry_if=retry_if,
                operation=func.__name__,
            )

        return wrapper

    return decorator
