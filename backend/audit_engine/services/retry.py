"""
Async retry decorator with exponential backoff.
"""
import asyncio
import random
from functools import wraps
from typing import Optional, Tuple, Type

from audit_engine.logger import logger


def retry_async(
    max_attempts: int = 3,
    base_delay: float = 0.5,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    jitter: float = 0.1,
    max_delay: Optional[float] = 30.0,
):
    """
    Retry an async function with exponential backoff.

    Args:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the second attempt, doubled after each failure
        exceptions: Exception types that trigger a retry; anything else propagates
        jitter: Upper bound of random noise added to each delay
        max_delay: Cap on a single delay (None for no cap)
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 1
            delay = base_delay

            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    if attempt >= max_attempts:
                        raise

                    wait = delay if max_delay is None else min(delay, max_delay)
                    logger.warning(
                        f"{func.__qualname__} failed (attempt {attempt}/{max_attempts}): {exc}. "
                        f"Retrying in {wait:.1f}s"
                    )
                    await asyncio.sleep(wait + random.uniform(0, jitter))
                    attempt += 1
                    delay *= 2

        return wrapper

    return decorator
