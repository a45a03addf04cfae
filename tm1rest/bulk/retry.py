"""
Chunking, grouping and retry helpers for the bulk engine.

All three are plain functions so they can be tested (and reused) without
a TM1 connection.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, TypeVar

from ..exceptions import BulkWriteFailure
from .models import BulkWriteOptions

logger = logging.getLogger("tm1rest.bulk.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry settings for one unit of work.

    retry_delay is in milliseconds; attempt n waits retry_delay * n.
    """

    max_retries: int = 3
    retry_delay: float = 1000
    cancel_at_failure: bool = False

    @classmethod
    def from_options(cls, options: BulkWriteOptions) -> "RetryPolicy":
        return cls(
            max_retries=options.max_retries,
            retry_delay=options.retry_delay,
            cancel_at_failure=options.cancel_at_failure,
        )


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split items into consecutive chunks of at most size elements.

    Raises:
        ValueError: If size is not a positive integer
    """
    if size <= 0:
        raise ValueError(f"Chunk size must be a positive integer, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def group_by_target(
    items: Iterable[T], key: Callable[[T], Hashable] = attrgetter("target")
) -> dict[Hashable, list[T]]:
    """Stable partition: groups in first-seen order, members in input order."""
    groups: dict[Hashable, list[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


async def with_retry(
    fn: Callable[[], Awaitable[Any]],
    target: str,
    policy: RetryPolicy = RetryPolicy(),
    cancel_event: asyncio.Event | None = None,
) -> Any:
    """
    Await fn() until it succeeds, backing off linearly between attempts.

    Args:
        fn: Zero-argument coroutine function (one chunk's worth of work)
        target: Cube name, used in errors and logs
        policy: Retry settings
        cancel_event: Optional event checked before every backoff sleep

    Raises:
        BulkWriteFailure: When retries are exhausted, cancel_at_failure is set
            or cancel_event fires. The last error is chained as __cause__.
    """
    attempts = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            attempts += 1
            if policy.cancel_at_failure or attempts > policy.max_retries:
                raise BulkWriteFailure(target, attempts, str(e)) from e
            if cancel_event is not None and cancel_event.is_set():
                raise BulkWriteFailure(target, attempts, f"cancelled: {e}") from e

            delay = policy.retry_delay * attempts / 1000
            logger.warning(
                f"Write to cube '{target}' failed (attempt {attempts}/{policy.max_retries + 1}), "
                f"retrying in {delay:.2f}s: {e}"
            )
            await asyncio.sleep(delay)
