"""Retry utilities with exponential backoff."""
import asyncio
from collections.abc import Awaitable, Callable
from logging import Logger


def _describe(error: Exception | None) -> str:
    """Render an exception for logging, naming it when it has no message."""
    if error is None:
        return "unknown"
    return str(error) or type(error).__name__


async def with_retry(
    fn: Callable[[], Awaitable[None]],
    *,
    name: str,
    logger: Logger,
    max_retries: int = 3,
    initial_backoff_sec: float = 2.0,
    retryable_exceptions: tuple[type[Exception], ...] = (OSError,),
    timeout_sec: float | None = None,
) -> bool:
    """Execute a function with retry logic and exponential backoff.

    Args:
        fn: Coroutine function to execute.
        name: Name for logging purposes.
        logger: Logger instance to use.
        max_retries: Maximum number of attempts.
        initial_backoff_sec: Initial backoff delay in seconds (doubles each retry).
        retryable_exceptions: Exception types that trigger a retry.
        timeout_sec: Optional bound on each attempt. A timed out attempt
            counts as a retryable failure.

    Returns:
        True if the function succeeded, False otherwise.
    """
    last_error: Exception | None = None
    retryable = (*retryable_exceptions, TimeoutError)

    for attempt in range(max_retries):
        try:
            await asyncio.wait_for(fn(), timeout_sec)
            return True
        except retryable as e:
            last_error = e
            if attempt + 1 >= max_retries:
                break
            backoff = initial_backoff_sec * (2**attempt)
            logger.warning(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                name,
                attempt + 1,
                max_retries,
                _describe(e),
                backoff,
            )
            await asyncio.sleep(backoff)
        except Exception as e:
            logger.error("%s failed (non-retryable): %s", name, e)
            return False

    logger.error(
        "%s failed after %d attempts. Last error: %s",
        name,
        max_retries,
        _describe(last_error),
    )
    return False
