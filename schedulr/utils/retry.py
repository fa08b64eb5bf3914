"""Bounded polling helpers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def poll_until(
    func: Callable[[int], Awaitable[T]],
    *,
    attempts: int = 5,
    interval: float = 1.0,
    done: Callable[[T], bool] = bool,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T | None:
    """Call ``func`` up to ``attempts`` times, sleeping ``interval`` before each call.

    Returns the first result accepted by ``done``, otherwise the last result
    (``None`` when ``attempts`` is zero). Never raises on exhaustion.
    """
    result: T | None = None
    for attempt in range(1, attempts + 1):
        await sleep(interval)
        result = await func(attempt)
        if done(result):
            return result
        logger.debug("Poll attempt %s of %s not ready", attempt, attempts)
    return result
