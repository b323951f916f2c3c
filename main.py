#!/usr/bin/env python3
"""
Main entry point for the word-frequency crawler.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from wordcrawler import __version__
from wordcrawler.utils.config import load_config, Config, ConfigError
from wordcrawler.utils.logger import setup_logging, log_system_info
from wordcrawler.utils.monitoring import MetricsCollector
from wordcrawler.crawler.records import CrawlResult
from wordcrawler.crawler.scheduler import CrawlerScheduler
from wordcrawler.storage.results_writer import ResultsWriter


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self._shutdown_event: Optional[asyncio.Event] = None

    def setup_signal_handlers(self):
        """Setup signal handlers for shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, stopping crawl...")
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

    async def run(self, config_path: str, overrides: Dict[str, Any],
                  output_dir: Optional[str] = None, dry_run: bool = False) -> int:
        """Run the crawler."""
        try:
            config = load_config(config_path, overrides)
        except (FileNotFoundError, ConfigError) as e:
            print(f"Error: {e}")
            return 1

        if output_dir:
            config.output.directory = output_dir

        setup_logging(config.logging)
        log_system_info()

        self._shutdown_event = asyncio.Event()
        self.setup_signal_handlers()

        crawler_config = config.crawler
        self.logger.info("=== WEB CRAWLER STARTING ===")
        self.logger.info(f"Configuration loaded from: {config_path}")
        self.logger.info(f"Seed URL: {crawler_config.seed_url}")
        self.logger.info(f"Max depth: {crawler_config.max_depth}")
        self.logger.info(f"Concurrency: {crawler_config.concurrency} workers")
        self.logger.info(f"Politeness delay: {crawler_config.delay_ms}ms")

        metrics = MetricsCollector(
            concurrency=crawler_config.concurrency,
            enable_prometheus=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port,
        )

        try:
            async with CrawlerScheduler(crawler_config, metrics=metrics,
                                        stats_interval=config.monitoring.stats_interval) as scheduler:
                self.scheduler = scheduler

                if dry_run:
                    await self._dry_run(scheduler, config)
                    return 0

                metrics.start_prometheus_server()

                crawl_task = asyncio.create_task(scheduler.crawl())
                shutdown_task = asyncio.create_task(self._shutdown_event.wait())

                done, pending = await asyncio.wait(
                    [crawl_task, shutdown_task],
                    return_when=asyncio.FIRST_COMPLETED
                )

                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

                if crawl_task not in done:
                    stats = scheduler.get_stats()
                    self.logger.warning(f"Crawl interrupted after {stats['pages_crawled']} pages "
                                        f"({stats['total_queued']} still queued), partial results discarded")
                    return 130

                result = crawl_task.result()

            self._print_summary(result)
            ResultsWriter(config.output.directory, config.output.top_words).write(result)

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            self.logger.info("=== WEB CRAWLER FINISHED ===")

        return 0

    async def _dry_run(self, scheduler: CrawlerScheduler, config: Config):
        """Check robots.txt and fetch the seed URL without crawling."""
        seed_url = config.crawler.seed_url
        self.logger.info("DRY RUN MODE: fetching seed URL only")

        if scheduler.robots is not None:
            allowed = await scheduler.robots.can_fetch(seed_url)
            self.logger.info(f"Robots.txt allows seed URL: {allowed}")

        result = await scheduler.fetcher.fetch(seed_url)
        if result.ok:
            self.logger.info(f"Test fetch successful: {result.status_code} "
                             f"({result.fetch_time * 1000:.0f}ms)")
        else:
            self.logger.warning(f"Test fetch failed: {result.error}")

        self.logger.info("Dry run completed")

    def _print_summary(self, result: CrawlResult):
        """Print summary statistics."""
        metrics = result.metrics

        print('\n' + '=' * 60)
        print('CRAWL SUMMARY')
        print('=' * 60)
        print(f"Pages crawled: {result.total_pages}")
        print(f"Total words: {result.total_words:,}")
        print(f"Unique words: {result.unique_words:,}")
        print(f"Success rate: {metrics.success_rate:.1f}%")
        print(f"Average response time: {metrics.average_response_time:.0f}ms")
        print(f"Pages per minute: {metrics.pages_per_minute:.2f}")
        print(f"Concurrency efficiency: {metrics.efficiency:.1f}%")
        print(f"Total execution time: {metrics.total_execution_time:.1f}s")

        print('\nTOP 10 WORDS:')
        for index, (word, count, percentage) in enumerate(result.top_words(10), start=1):
            print(f"{index:2}. {word:<15} {count:>6} ({percentage:.2f}%)")

        if result.errors:
            print(f"\n{len(result.errors)} errors occurred during crawling")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Word-Frequency Web Crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                   # Run with default config.yaml
  python main.py --config my_config.yaml           # Run with custom config
  python main.py --url https://example.com         # Override the seed URL
  python main.py --concurrency 10 --depth 3        # Wider and deeper crawl
  python main.py --concurrency 1 --delay 1000      # Sequential, one request/second
  python main.py --dry-run                         # Fetch the seed URL only
        """
    )

    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('url', nargs='?', help='Seed URL (overrides config)')
    parser.add_argument('--url', dest='url_option', help='Seed URL (overrides config)')
    parser.add_argument('--depth', type=int, help='Maximum crawl depth')
    parser.add_argument('--concurrency', type=int, help='Number of concurrent workers')
    parser.add_argument('--delay', type=int, help='Per-host delay between requests in ms')
    parser.add_argument('--timeout', type=int, help='Request timeout in ms')
    parser.add_argument('--output', help='Directory for result files (overrides config)')
    parser.add_argument('--dry-run', action='store_true',
                        help='Test configuration without actually crawling')
    parser.add_argument('--version', action='version',
                        version=f'Word-Frequency Web Crawler {__version__}')

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.")
        print("Please create a config.yaml file or specify a different path with --config")
        return 1

    overrides = {
        'seed_url': args.url_option or args.url,
        'max_depth': args.depth,
        'concurrency': args.concurrency,
        'delay_ms': args.delay,
        'request_timeout_ms': args.timeout,
    }

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(args.config, overrides,
                                   output_dir=args.output, dry_run=args.dry_run))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
