"""
Job Queue
=========

Async bounded queue between the selector and the annotation workers.

This module provides the JobQueue class, the ONLY interface between the
decode/selection loop and the dispatcher workers.

Design Rules:
    - Fixed maximum size; put() suspends while full (backpressure)
    - Never drops items: every selected frame must be described
    - close() wakes every worker with an end-of-work sentinel
    - Exposes minimal metrics for observability
"""

import asyncio
import logging
from typing import Generic, Optional, TypeVar


logger = logging.getLogger(__name__)


T = TypeVar("T")


class QueueClosedError(Exception):
    """Raised when putting into a closed JobQueue."""
    pass


class JobQueue(Generic[T]):
    """
    Async-safe bounded queue with blocking put.

    Memory held by queued items is bounded by maxsize, independent of
    how many items are put over the queue's lifetime.

    Attributes:
        maxsize: Maximum number of queued items
        total_put: Items ever put
        high_water: Largest observed queue size

    Example:
        queue = JobQueue(maxsize=8)

        # Producer
        await queue.put(candidate)
        await queue.close(consumers=4)

        # Consumer
        while (item := await queue.get()) is not None:
            handle(item)
    """

    def __init__(self, maxsize: int = 8) -> None:
        """
        Initialize job queue.

        Args:
            maxsize: Maximum queued items. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed: bool = False
        self._total_put: int = 0
        self._high_water: int = 0

    @property
    def maxsize(self) -> int:
        """Maximum queue size."""
        return self._maxsize

    @property
    def size(self) -> int:
        """Current number of queued items (sentinels included)."""
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def total_put(self) -> int:
        """Total items ever put into the queue."""
        return self._total_put

    @property
    def high_water(self) -> int:
        """Largest queue size observed after a put."""
        return self._high_water

    async def put(self, item: T) -> None:
        """
        Add an item, waiting while the queue is full.

        Raises:
            QueueClosedError: If close() was already called
        """
        if self._closed:
            raise QueueClosedError("JobQueue is closed")

        await self._queue.put(item)
        self._total_put += 1
        self._high_water = max(self._high_water, self._queue.qsize())

    async def get(self) -> Optional[T]:
        """
        Get the next item.

        Returns:
            Next item, or None once the queue is closed and drained.
        """
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    async def close(self, consumers: int) -> None:
        """
        Close the queue and enqueue one sentinel per consumer.

        Args:
            consumers: Number of consumers that will call get()
        """
        self._closed = True
        for _ in range(consumers):
            await self._queue.put(None)

    def clear(self) -> int:
        """
        Drop all queued items.

        Returns:
            Number of items cleared.
        """
        cleared = 0
        while True:
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                cleared += 1
            except asyncio.QueueEmpty:
                break
        return cleared

    def metrics(self) -> dict:
        """
        Get queue metrics for observability.

        Returns:
            Dict with size, maxsize, total_put, high_water
        """
        return {
            "size": self.size,
            "maxsize": self._maxsize,
            "total_put": self._total_put,
            "high_water": self._high_water,
        }
