"""
Retry decorator and configuration for transient network failures.
"""

import time
import random
import logging
from functools import wraps
from typing import Callable, Type, List, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    exceptions: Optional[List[Type[Exception]]] = None

    def delay_for(self, attempt: int) -> float:
        """
        Delay to wait after the given zero-based attempt.

        Args:
            attempt: Number of the attempt that just failed

        Returns:
            Seconds to sleep before the next attempt
        """
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay


def retry(config: RetryConfig):
    """
    Retry decorator with exponential backoff and jitter.

    Args:
        config: Attempts, delays and the exceptions worth retrying (all if None)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(config.max_attempts):
                try:
                    return func(*args, **kwargs)
                except Exception as e:
                    last_exception = e

                    if config.exceptions and not isinstance(e, tuple(config.exceptions)):
                        raise

                    if attempt == config.max_attempts - 1:
                        break

                    delay = config.delay_for(attempt)
                    logger.warning(
                        f"Attempt {attempt + 1}/{config.max_attempts} failed for {func.__name__}: {e}. "
                        f"Retrying in {delay:.2f} seconds..."
                    )
                    time.sleep(delay)

            logger.error(f"All {config.max_attempts} attempts failed for {func.__name__}")
            raise last_exception

        return wrapper
    return decorator
