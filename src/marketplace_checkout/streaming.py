"""Latest-value publisher for checkout session snapshots.

The orchestrator and the cart store publish a full snapshot on every write;
subscribers consume them via ``async for`` iteration.  Subscribers only ever
see the most recent value: a slow consumer never receives a backlog, it
skips straight to the newest snapshot.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_CLOSED = object()


class SnapshotStream(Generic[T]):
    """In-memory latest-value pub/sub.

    Each subscriber gets its own single-slot ``asyncio.Queue``; publishing
    replaces whatever the slot held.
    """

    def __init__(self, initial: T, name: str = "snapshot") -> None:
        self._value = initial
        self._name = name
        self._queues: list[asyncio.Queue[object]] = []

    @property
    def value(self) -> T:
        """The most recently published snapshot."""
        return self._value

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def publish(self, value: T) -> None:
        """Replace the current snapshot and hand it to every subscriber."""
        self._value = value
        for queue in self._queues:
            _replace(queue, value)

        logger.debug(
            "snapshot_published",
            stream=self._name,
            subscribers=len(self._queues),
        )

    # ------------------------------------------------------------------
    # Subscribing
    # ------------------------------------------------------------------

    async def subscribe(self) -> AsyncIterator[T]:
        """Yield the current snapshot, then each newer one as it arrives.

        The iterator terminates when :meth:`close` is called.
        """
        queue: asyncio.Queue[object] = asyncio.Queue(maxsize=1)
        queue.put_nowait(self._value)
        self._queues.append(queue)

        try:
            while True:
                item = await queue.get()
                if item is _CLOSED:
                    break
                yield item  # type: ignore[misc]
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Signal all subscribers to stop iterating."""
        for queue in self._queues:
            _replace(queue, _CLOSED)
        self._queues.clear()


def _replace(queue: asyncio.Queue[object], item: object) -> None:
    """Put *item* into a single-slot queue, dropping any stale value."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(item)
