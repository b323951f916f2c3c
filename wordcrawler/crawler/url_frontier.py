"""
URL Frontier: bounded FIFO queue of (url, depth) entries plus the visited set.

Claiming an entry moves it into the visited set and counts it as in flight
in one step under the frontier's condition variable. Workers waiting for
work are woken by ``add`` and by ``task_done``; once the queue is empty and
nothing is in flight the frontier is quiescent and every waiter is released.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Dict, Iterable, Optional, Set

from .parser import normalize_url
from .records import FrontierEntry


class URLFrontier:
    """
    Manages URLs to be crawled for a single run.
    """

    def __init__(self, max_depth: int, capacity: int = 1000):
        self.max_depth = max_depth
        self.capacity = capacity
        self.logger = logging.getLogger(__name__)

        self._queue: Deque[FrontierEntry] = deque()
        self._queued: Set[str] = set()
        self._visited: Set[str] = set()
        self._active = 0
        self._rejected_full = 0
        self._peak_size = 0
        self._condition = asyncio.Condition()

    @property
    def active(self) -> int:
        """Number of claimed entries whose pipeline has not finished."""
        return self._active

    def __len__(self) -> int:
        return len(self._queue)

    def is_empty(self) -> bool:
        """Check if the frontier is empty."""
        return not self._queue

    def is_quiescent(self) -> bool:
        return not self._queue and self._active == 0

    def is_visited(self, url: str) -> bool:
        return normalize_url(url) in self._visited

    def _try_add(self, url: str, depth: int) -> bool:
        if depth > self.max_depth:
            return False

        url = normalize_url(url)
        if url in self._visited or url in self._queued:
            return False

        if len(self._queue) >= self.capacity:
            self._rejected_full += 1
            return False

        self._queue.append(FrontierEntry(url=url, depth=depth))
        self._queued.add(url)
        self._peak_size = max(self._peak_size, len(self._queue))
        return True

    async def add(self, url: str, depth: int) -> bool:
        """
        Add a URL to the frontier.
        Returns True if added; False if too deep, already seen, or the queue is full.
        """
        async with self._condition:
            added = self._try_add(url, depth)
            if added:
                self._condition.notify()
        return added

    async def add_many(self, urls: Iterable[str], depth: int) -> int:
        """Add multiple URLs at one depth. Returns count of added URLs."""
        async with self._condition:
            added = sum(1 for url in urls if self._try_add(url, depth))
            if added:
                self._condition.notify(added)
        return added

    async def claim(self) -> Optional[FrontierEntry]:
        """
        Take the oldest entry, mark it visited and in flight.

        Waits while the queue is empty but other claims are still in flight.
        Returns None once the frontier is quiescent.
        """
        async with self._condition:
            while True:
                if self._queue:
                    entry = self._queue.popleft()
                    self._queued.discard(entry.url)
                    self._visited.add(entry.url)
                    self._active += 1
                    return entry

                if self._active == 0:
                    self._condition.notify_all()
                    return None

                await self._condition.wait()

    async def task_done(self):
        """Mark a claimed entry's pipeline as finished."""
        async with self._condition:
            if self._active <= 0:
                raise ValueError("task_done() called more times than claim()")
            self._active -= 1
            if self._active == 0 and not self._queue:
                self.logger.debug("Frontier quiescent")
            # Waiters re-check: either new work arrived or the run is over
            self._condition.notify_all()

    def get_stats(self) -> Dict[str, int]:
        """Get frontier statistics."""
        return {
            'total_queued': len(self._queue),
            'total_visited': len(self._visited),
            'active': self._active,
            'rejected_full': self._rejected_full,
            'peak_queued': self._peak_size,
            'capacity': self.capacity,
        }
