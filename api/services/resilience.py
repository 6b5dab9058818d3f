"""
Resilience utilities for Stan Chat.

Provides:
- Retry logic for transient provider failures
- Retryable HTTP status classification
"""
import asyncio
import functools
import logging
from typing import Callable, TypeVar, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 2
    base_delay: float = 0.5  # seconds
    max_delay: float = 8.0  # seconds
    exponential_base: float = 2.0
    retryable_exceptions: tuple = (Exception,)


DEFAULT_RETRY_CONFIG = RetryConfig()


def retry_async(config: Optional[RetryConfig] = None):
    """
    Decorator for async functions with retry logic.

    The config may also be supplied per call through a ``retry_config``
    keyword argument, which is consumed by the wrapper.

    Args:
        config: Retry configuration
    """
    default_cfg = config or DEFAULT_RETRY_CONFIG

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, retry_config: Optional[RetryConfig] = None, **kwargs) -> T:
            cfg = retry_config or default_cfg
            last_exception = None

            for attempt in range(cfg.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except cfg.retryable_exceptions as e:
                    last_exception = e

                    if attempt < cfg.max_retries:
                        delay = min(
                            cfg.base_delay * (cfg.exponential_base ** attempt),
                            cfg.max_delay
                        )
                        logger.warning(
                            f"Retry {attempt + 1}/{cfg.max_retries} for {func.__name__}: {e}. "
                            f"Waiting {delay:.1f}s..."
                        )

                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            f"All {cfg.max_retries} retries exhausted for {func.__name__}: {e}"
                        )

            raise last_exception

        return wrapper
    return decorator


def is_retryable_status(status_code: int) -> bool:
    """
    Check if HTTP status code is retryable.

    Args:
        status_code: HTTP status code

    Returns:
        True if the error is transient and retryable
    """
    # 5xx server errors (except 501 Not Implemented)
    if status_code >= 500 and status_code != 501:
        return True

    # 429 Too Many Requests
    if status_code == 429:
        return True

    # 408 Request Timeout
    if status_code == 408:
        return True

    return False
