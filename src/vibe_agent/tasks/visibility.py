# src/vibe_agent/tasks/visibility.py

from __future__ import annotations

"""
Read-after-write helper.

TaskStore.create_task() returns before the row is readable. Code that creates a task and
immediately needs it back goes through await_visible() instead of an ad hoc sleep/retry.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import TypeVar

from ..errors import RetrievalGapError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 2  # first read + one retry
DEFAULT_DELAY_SECONDS = 0.1


async def await_visible(
    fetch: Callable[[], T | None],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
    what: str = "record",
) -> T:
    """
    Call fetch() until it returns something other than None.

    At most `max_attempts` calls are made, with a fixed `delay_seconds` sleep between them.
    Raises RetrievalGapError if the last attempt still returns None.
    Exceptions raised by fetch() (e.g. PersistenceError) propagate unchanged.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        value = fetch()
        if value is not None:
            if attempt > 1:
                logger.debug("%s became visible after %d attempts", what, attempt)
            return value
        if attempt < attempts:
            logger.debug("%s not visible yet (attempt %d/%d), retrying", what, attempt, attempts)
            await asyncio.sleep(delay_seconds)

    raise RetrievalGapError(f"{what} not visible after {attempts} attempts", attempts=attempts)
