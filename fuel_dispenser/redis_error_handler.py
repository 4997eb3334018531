"""
Redis error handling utilities.

This module provides a decorator for async functions that write to the
optional Redis status mirror. A Redis fault must never stop the
dispenser, so the decorator turns it into a logged, unsuccessful
RedisOperationResult.
"""

from functools import wraps
from typing import Any, Awaitable, Callable

from redis.exceptions import RedisError

from fuel_dispenser.core.exceptions import RedisConnectionError, RepositoryError
from fuel_dispenser.loggers import logger


class RedisOperationResult:
    """
    Standardized result for Redis operations.

    Attributes:
        success: Whether the operation succeeded.
        message: Human-readable message about the operation.
        data: Optional additional data from the operation.
    """

    def __init__(
        self,
        success: bool,
        message: str,
        data: Any = None,
    ) -> None:
        self.success = success
        self.message = message
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary."""
        result = {
            "success": self.success,
            "message": self.message,
        }
        if self.data is not None:
            result["data"] = self.data
        return result

    def __bool__(self) -> bool:
        return self.success


def redis_error_handler(
    success_message: str,
) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[RedisOperationResult]]]:
    """
    Decorator for handling Redis errors and providing unified results.

    Args:
        success_message: The message to return on successful operation.

    Returns:
        Decorated function returning a RedisOperationResult.

    Example:
        @redis_error_handler("Pump status mirrored")
        async def mirror_status(self):
            await self.repository.save_status(status)
    """
    def decorator(
        func: Callable[..., Awaitable[Any]],
    ) -> Callable[..., Awaitable[RedisOperationResult]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> RedisOperationResult:
            try:
                result = await func(*args, **kwargs)
                return RedisOperationResult(True, success_message, result)
            except RedisConnectionError as e:
                logger.error(f"Redis connection error: {e}")
                return RedisOperationResult(False, f"Redis connection error: {e}")
            except (RepositoryError, RedisError) as e:
                logger.error(f"Redis error: {e}")
                return RedisOperationResult(False, f"Redis error: {e}")
        return wrapper
    return decorator
