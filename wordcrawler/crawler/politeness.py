"""
Per-host politeness: request spacing and robots.txt compliance.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict, Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

from .fetcher import WebFetcher


def get_host(url: str) -> str:
    """Extract the lowercased host (with port) from a URL."""
    return urlparse(url).netloc.lower()


class PolitenessController:
    """
    Enforces a minimum interval between request starts to the same host.

    Each call reserves the next free start slot for the host under a lock,
    then sleeps outside the lock until that slot arrives, so workers on
    different hosts never wait on each other.
    """

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self.logger = logging.getLogger(__name__)
        self._last_request: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def wait(self, url: str) -> float:
        """Wait for the host's turn. Returns the reserved request-start time."""
        host = get_host(url)

        async with self._lock:
            now = time.monotonic()
            last = self._last_request.get(host)
            start = now if last is None else max(now, last + self.min_interval)
            self._last_request[host] = start

        delay = start - time.monotonic()
        if delay > 0:
            self.logger.debug(f"Politeness wait {delay:.3f}s for {host}")
            await asyncio.sleep(delay)

        return start

    def last_request_time(self, url: str) -> Optional[float]:
        return self._last_request.get(get_host(url))


class RobotsCache:
    """
    Fetch-once cache of parsed robots.txt rules, keyed by host.

    A host whose robots.txt cannot be retrieved is cached as ``None``,
    meaning every path is allowed. Entries never expire within a run.
    """

    def __init__(self, fetcher: WebFetcher, user_agent: str, timeout: float = 5.0):
        self.fetcher = fetcher
        self.user_agent = user_agent
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

        self._rules: Dict[str, Optional[RobotFileParser]] = {}
        self._host_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.fetch_count = 0

    async def get_rules(self, url: str) -> Optional[RobotFileParser]:
        """Return the cached rule set for the URL's host, fetching it once."""
        parsed = urlparse(url)
        host = parsed.netloc.lower()

        if host in self._rules:
            return self._rules[host]

        async with self._host_locks[host]:
            # Another worker may have filled the entry while we waited.
            if host in self._rules:
                return self._rules[host]

            robots_url = f"{parsed.scheme}://{parsed.netloc}/robots.txt"
            self.fetch_count += 1
            robots_content = await self.fetcher.fetch_text(robots_url, timeout=self.timeout)

            if robots_content is None:
                self.logger.debug(f"No robots.txt rules for {host}, assuming allowed")
                rules = None
            else:
                rules = RobotFileParser()
                rules.set_url(robots_url)
                rules.parse(robots_content.splitlines())
                self.logger.debug(f"Loaded robots.txt for {host}")

            self._rules[host] = rules
            return rules

    async def can_fetch(self, url: str) -> bool:
        """Check if URL can be fetched according to robots.txt."""
        rules = await self.get_rules(url)
        if rules is None:
            return True
        return rules.can_fetch(self.user_agent, url)

    def __len__(self) -> int:
        return len(self._rules)
