"""
Resilience utilities for error handling and fault tolerance.

This module provides:
- retry_with_backoff decorator for transient errors
- handle_partial_failure for reporting per-item outcomes of a batch
"""

import time
import logging
from typing import Callable, Optional, TypeVar, ParamSpec
from functools import wraps

logger = logging.getLogger(__name__)

# Type variables for generic decorator
P = ParamSpec('P')
T = TypeVar('T')


class TransientError(Exception):
    """
    Base class for transient errors that should be retried.

    ``retry_after`` carries a server-requested delay in seconds, when the
    server sent one.
    """

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (TransientError,)
):
    """
    Decorator for retrying functions with exponential backoff.

    Applied to outbound GitHub and Slack calls that are safe to repeat.
    Only the exception types listed in ``exceptions`` are retried; anything
    else propagates on the first failure.

    Args:
        max_retries: Maximum number of attempts (default: 3)
        base_delay: Initial delay in seconds between retries (default: 1.0)
        max_delay: Maximum delay in seconds between retries (default: 60.0)
        exponential_base: Base for exponential backoff calculation (default: 2.0)
        exceptions: Tuple of exception types to catch and retry

    Example:
        @retry_with_backoff(max_retries=3, base_delay=1.0)
        def fetch_ref():
            return client.get("/repos/acme/api/git/ref/heads/main")
    """
    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception = None

            for attempt in range(max_retries):
                try:
                    result = func(*args, **kwargs)

                    if attempt > 0:
                        logger.info(
                            f"{func.__name__} succeeded on attempt {attempt + 1}/{max_retries}"
                        )

                    return result

                except exceptions as e:
                    last_exception = e

                    if attempt == max_retries - 1:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} attempts: {e}",
                            exc_info=True
                        )
                        raise

                    retry_after = getattr(e, "retry_after", None)
                    if retry_after is not None:
                        delay = min(retry_after, max_delay)
                    else:
                        delay = min(base_delay * (exponential_base ** attempt), max_delay)

                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{max_retries}: {e}. "
                        f"Retrying in {delay:.1f}s..."
                    )

                    time.sleep(delay)

            raise last_exception

        return wrapper

    return decorator


def handle_partial_failure(
    operation_name: str,
    total_items: int,
    successful_items: int,
    errors: list,
    context: dict
) -> None:
    """
    Log partial failure with context.

    Args:
        operation_name: Name of the operation
        total_items: Total number of items processed
        successful_items: Number of successful items
        errors: List of error messages
        context: Additional context information
    """
    failed_items = total_items - successful_items

    if failed_items > 0:
        logger.warning(
            f"Partial failure in {operation_name}: "
            f"{successful_items}/{total_items} succeeded, {failed_items} failed",
            extra={
                "operation": operation_name,
                "total_items": total_items,
                "successful_items": successful_items,
                "failed_items": failed_items,
                "errors": errors[:10],
                "context": context
            }
        )
    else:
        logger.info(
            f"{operation_name} completed successfully: {successful_items}/{total_items}",
            extra={
                "operation": operation_name,
                "total_items": total_items,
                "context": context
            }
        )
