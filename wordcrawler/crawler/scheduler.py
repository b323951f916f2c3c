"""
Crawler scheduler: a fixed pool of workers draining one shared frontier.

Each worker claims an entry, checks robots.txt, waits for the host's
politeness slot, fetches, extracts and aggregates, then feeds the page's
links back into the frontier before releasing its claim. A run ends when
every worker has observed a quiescent frontier.
"""

import asyncio
import logging
import threading
import time
from types import MappingProxyType
from typing import Callable, List, Optional

from .url_frontier import URLFrontier
from .fetcher import WebFetcher
from .parser import ContentParser, normalize_url
from .politeness import PolitenessController, RobotsCache
from .records import CrawlResult, ErrorRecord, FrontierEntry, PageRecord, ProgressEvent, utc_timestamp
from .tokenizer import Tokenizer, WordFrequency
from ..utils.config import CrawlerConfig
from ..utils.logger import CrawlerLogAdapter, LoggingContext, get_crawler_logger
from ..utils.monitoring import MetricsCollector


ProgressCallback = Callable[[ProgressEvent], None]

logger = logging.getLogger(__name__)


def default_progress_callback(progress: ProgressEvent):
    """Log the first ten pages and every fifth page after that."""
    if progress.total_pages % 5 == 0 or progress.total_pages <= 10:
        logger.info(
            f"{progress.worker_id}: Page {progress.total_pages} | {progress.url[:60]} | "
            f"{progress.response_time:.0f}ms | Depth {progress.depth}"
        )


class CrawlerScheduler:
    """
    Coordinates frontier, politeness, fetcher, parser and aggregation.

    A scheduler instance performs one crawl run; use it as an async context
    manager or call ``initialize()``/``close()`` around ``crawl()``.
    """

    def __init__(self, config: CrawlerConfig,
                 progress_callback: Optional[ProgressCallback] = default_progress_callback,
                 metrics: Optional[MetricsCollector] = None,
                 stats_interval: float = 30.0):
        self.config = config
        self.progress_callback = progress_callback
        self.stats_interval = stats_interval
        self.logger = logging.getLogger(__name__)

        self.frontier = URLFrontier(config.max_depth, config.frontier_capacity)
        self.fetcher = WebFetcher(
            user_agent=config.user_agent,
            request_timeout=config.request_timeout,
            max_redirects=config.max_redirects,
            max_connections=config.concurrency,
        )
        self.parser = ContentParser(max_links_per_page=config.max_links_per_page)
        self.tokenizer = Tokenizer()
        self.politeness = PolitenessController(config.delay)
        self.robots: Optional[RobotsCache] = None
        if config.respect_robots_txt:
            self.robots = RobotsCache(self.fetcher, config.user_agent, config.robots_timeout)

        self.word_frequency = WordFrequency()
        self.metrics = metrics or MetricsCollector(concurrency=config.concurrency)

        self._results_lock = threading.Lock()
        self._pages: List[PageRecord] = []
        self._errors: List[ErrorRecord] = []
        self._started_at: Optional[str] = None
        self.is_running = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def initialize(self):
        """Open the HTTP session."""
        await self.fetcher.start()
        self.logger.info("Crawler scheduler initialized")

    async def close(self):
        """Close connections and cleanup resources."""
        await self.fetcher.close()
        self.logger.info("Crawler scheduler closed")

    async def crawl(self, seed_url: Optional[str] = None) -> CrawlResult:
        """
        Crawl from the seed URL until the frontier is quiescent.

        Args:
            seed_url: Overrides the configured seed URL

        Returns:
            Immutable CrawlResult bundle
        """
        if self.is_running:
            raise RuntimeError("Crawler is already running")

        seed_url = seed_url or self.config.seed_url
        if not seed_url:
            raise ValueError("A seed URL is required")

        self.is_running = True
        self._started_at = utc_timestamp()
        started = time.monotonic()
        self.metrics.start()

        self.logger.info(f"Starting crawl of {seed_url} with {self.config.concurrency} workers "
                         f"(max depth {self.config.max_depth}, delay {self.config.delay_ms}ms)")

        await self.frontier.add(seed_url, 0)

        stats_task = asyncio.create_task(self._stats_reporter())
        try:
            workers = [
                asyncio.create_task(self._worker(worker_id))
                for worker_id in range(self.config.concurrency)
            ]
            await asyncio.gather(*workers)
        finally:
            stats_task.cancel()
            await asyncio.gather(stats_task, return_exceptions=True)
            self.metrics.finish()
            self.is_running = False

        result = CrawlResult.build(
            pages=self._pages,
            word_frequency=self.word_frequency.snapshot(),
            total_words=self.word_frequency.total_words,
            metrics=self.metrics.summary(),
            errors=self._errors,
            seed_url=normalize_url(seed_url),
            max_depth=self.config.max_depth,
            concurrency=self.config.concurrency,
            started_at=self._started_at,
            finished_at=utc_timestamp(),
        )

        self._log_final_stats(result, time.monotonic() - started)
        return result

    async def _worker(self, worker_number: int):
        """
        Worker coroutine that processes URLs from the frontier until quiescence.
        """
        worker_id = f"Worker-{worker_number}"
        worker_logger = get_crawler_logger(__name__, worker_id=worker_id)
        worker_logger.debug("Worker started")

        while True:
            entry = await self.frontier.claim()
            if entry is None:
                break

            self.metrics.sample_concurrency(self.frontier.active)
            self.metrics.update_frontier_size(len(self.frontier))

            try:
                with LoggingContext(worker_logger, url=entry.url):
                    await self._process_entry(entry, worker_id, worker_logger)
            except Exception as e:
                worker_logger.error(f"Error processing {entry.url}: {e}", exc_info=True)
                self._record_error(entry.url, f"Unexpected error: {e}", 'unexpected', worker_id)
            finally:
                await self.frontier.task_done()

        worker_logger.debug("Worker finished")

    async def _process_entry(self, entry: FrontierEntry, worker_id: str,
                             worker_logger: CrawlerLogAdapter):
        """Run one claimed entry through robots -> politeness -> fetch -> parse -> aggregate."""
        url = entry.url

        if self.robots is not None and not await self.robots.can_fetch(url):
            self.metrics.record_robots_blocked()
            worker_logger.log_url_event(logging.INFO, url, "Robots.txt disallows URL, skipping")
            return

        await self.politeness.wait(url)

        fetch_result = await self.fetcher.fetch(url)
        cause = fetch_result.error_type.value if fetch_result.error_type else None
        self.metrics.record_request(fetch_result.ok, fetch_result.fetch_time, cause)

        if not fetch_result.ok:
            worker_logger.warning(f"Failed to fetch {url}: {fetch_result.error}")
            self._record_error(url, fetch_result.error, cause, worker_id)
            return

        parsed = self.parser.parse(url, fetch_result.content, fetch_result.final_url or url)
        words = self.tokenizer.count_words(parsed.content)
        response_time = fetch_result.fetch_time * 1000

        page = PageRecord(
            url=url,
            depth=entry.depth,
            title=parsed.title,
            word_count=len(words),
            total_words=sum(words.values()),
            link_count=len(parsed.links),
            timestamp=utc_timestamp(),
            response_time=response_time,
            text_length=len(parsed.content),
            words=MappingProxyType(words),
            links=tuple(parsed.links),
            processed_by=worker_id,
        )

        self.word_frequency.merge(words)
        with self._results_lock:
            self._pages.append(page)
            total_pages = len(self._pages)
        self.metrics.record_page(page.total_words, page.link_count)

        worker_logger.debug(f"Processed {url}: {page.total_words} words, {page.link_count} links")

        if entry.depth < self.config.max_depth:
            links = self.parser.outbound_links(parsed)
            added = await self.frontier.add_many(links, entry.depth + 1)
            worker_logger.debug(f"Queued {added} of {len(links)} links from {url}")

        if self.progress_callback is not None:
            progress = ProgressEvent(
                worker_id=worker_id,
                url=url,
                depth=entry.depth,
                total_pages=total_pages,
                total_words=self.word_frequency.total_words,
                response_time=response_time,
            )
            try:
                self.progress_callback(progress)
            except Exception as e:
                # The page is already recorded at this point
                worker_logger.warning(f"Progress callback failed for {url}: {e}", exc_info=True)

    def _record_error(self, url: str, message: str, cause: str, worker_id: str):
        with self._results_lock:
            self._errors.append(ErrorRecord(
                url=url,
                message=message,
                cause=cause,
                worker_id=worker_id,
            ))

    async def _stats_reporter(self):
        """Periodically log crawl statistics."""
        while True:
            await asyncio.sleep(self.stats_interval)
            self._log_current_stats()

    def _log_current_stats(self):
        """Log current crawl statistics."""
        frontier_stats = self.frontier.get_stats()
        summary = self.metrics.summary()

        self.logger.info(
            f"Crawl Progress: "
            f"Pages={summary.pages_crawled}, "
            f"Queued={frontier_stats['total_queued']}, "
            f"Active={frontier_stats['active']}, "
            f"Errors={summary.failed_requests}, "
            f"Rate={summary.pages_per_minute:.1f} pages/min, "
            f"AvgTime={summary.average_response_time:.0f}ms"
        )

    def _log_final_stats(self, result: CrawlResult, elapsed: float):
        """Log final crawl statistics."""
        frontier_stats = self.frontier.get_stats()
        summary = result.metrics

        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Pages crawled: {result.total_pages}")
        self.logger.info(f"Total words: {result.total_words}")
        self.logger.info(f"Unique words: {result.unique_words}")
        self.logger.info(f"Errors: {len(result.errors)}")
        self.logger.info(f"Robots.txt skips: {summary.robots_blocked}")
        if self.robots is not None:
            self.logger.info(f"Robots.txt hosts cached: {len(self.robots)}")
        self.logger.info(f"Success rate: {summary.success_rate:.1f}%")
        self.logger.info(f"Average response time: {summary.average_response_time:.0f}ms")
        self.logger.info(f"Max concurrent requests: {summary.max_concurrency}")
        self.logger.info(f"Avg concurrent requests: {summary.avg_concurrency:.1f}")
        self.logger.info(f"Pages per minute: {summary.pages_per_minute:.2f}")
        self.logger.info(f"URLs visited: {frontier_stats['total_visited']}")
        self.logger.info(f"Frontier rejections (full): {frontier_stats['rejected_full']}")
        self.logger.info(f"Total time: {elapsed:.2f} seconds")

    def get_stats(self) -> dict:
        """Get current crawl statistics."""
        stats = self.metrics.summary().to_dict()
        stats.update(self.frontier.get_stats())
        stats['is_running'] = self.is_running
        return stats
