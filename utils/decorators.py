"""Utility decorators for context source fetchers."""

import asyncio
import copy
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from lib.config import SOURCE_FETCH_TIMEOUT_SECONDS
from utils.logging import logger

T = TypeVar("T")


def fetch_guard(
    default: Any,
    timeout: Optional[float] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Make an async source fetcher total: it never raises to its caller.

    Any exception (or running past the timeout) is logged and replaced by a
    fresh copy of ``default``, so one failing source cannot take down the
    others gathered alongside it. Cancellation is not swallowed.

    Args:
        default (Any): Empty sentinel returned on failure ("" / None / []).
        timeout (float | None): Seconds before the fetch is abandoned.
            Defaults to SOURCE_FETCH_TIMEOUT_SECONDS.

    Returns:
        Callable: Decorated coroutine function.
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            limit = timeout if timeout is not None else SOURCE_FETCH_TIMEOUT_SECONDS
            try:
                return await asyncio.wait_for(func(*args, **kwargs), timeout=limit)
            except asyncio.TimeoutError:
                logger.warning(f"Source {func.__name__} timed out after {limit:.1f}s")
            except Exception as e:
                logger.error(f"Source {func.__name__} failed: {type(e).__name__}: {e}")
            return copy.deepcopy(default)

        return wrapper

    return decorator
