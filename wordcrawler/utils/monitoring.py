"""
Metrics collection for the crawler.

``MetricsCollector`` keeps the raw per-run samples (request outcomes,
latencies, page sizes and concurrency depth) behind a lock and mirrors the
counters into a private Prometheus registry, which can optionally be served
over HTTP while a crawl is running.
"""

import time
import logging
import threading
from collections import Counter as CounterDict
from typing import Dict, Optional, Any, List
from dataclasses import dataclass, field, asdict

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry, generate_latest
from prometheus_client import start_http_server


@dataclass(frozen=True)
class MetricsSummary:
    """Read-only view of a run's metrics, computed on demand."""
    total_execution_time: float
    request_count: int
    successful_requests: int
    failed_requests: int
    robots_blocked: int
    success_rate: float
    average_response_time: float
    average_words_per_page: float
    average_links_per_page: float
    pages_crawled: int
    pages_per_second: float
    pages_per_minute: float
    max_concurrency: int
    avg_concurrency: float
    efficiency: float
    failures_by_cause: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _average(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class MetricsCollector:
    """Collects request, page and concurrency metrics for one crawl run."""

    def __init__(self, concurrency: int = 1, enable_prometheus: bool = False,
                 prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.concurrency = concurrency
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port

        self._lock = threading.Lock()
        self.start_time = time.monotonic()
        self.end_time: Optional[float] = None

        self.request_count = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.robots_blocked = 0
        self.response_times: List[float] = []
        self.words_per_page: List[int] = []
        self.links_per_page: List[int] = []
        self.concurrent_peaks: List[int] = []
        self.failures_by_cause: CounterDict = CounterDict()

        self.registry = CollectorRegistry()
        self._setup_prometheus()

    def _setup_prometheus(self):
        """Define Prometheus metrics in a private registry."""
        self.prometheus_metrics = {
            'requests_total': Counter(
                'crawler_requests_total',
                'Total number of fetch attempts',
                registry=self.registry
            ),
            'errors_total': Counter(
                'crawler_errors_total',
                'Total number of failed fetches',
                ['cause'],
                registry=self.registry
            ),
            'pages_crawled_total': Counter(
                'crawler_pages_crawled_total',
                'Total number of pages parsed and aggregated',
                registry=self.registry
            ),
            'words_counted_total': Counter(
                'crawler_words_counted_total',
                'Total number of words counted',
                registry=self.registry
            ),
            'robots_blocked_total': Counter(
                'crawler_robots_blocked_total',
                'URLs skipped because robots.txt disallows them',
                registry=self.registry
            ),
            'response_time_seconds': Histogram(
                'crawler_response_time_seconds',
                'Response time for successful HTTP requests',
                registry=self.registry
            ),
            'active_workers': Gauge(
                'crawler_active_workers',
                'Number of workers holding a claimed URL',
                registry=self.registry
            ),
            'queue_size': Gauge(
                'crawler_queue_size',
                'Number of URLs waiting in the frontier',
                registry=self.registry
            ),
        }

    def start_prometheus_server(self):
        """Start Prometheus metrics HTTP server if enabled."""
        if not self.enable_prometheus:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def export_prometheus(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def record_request(self, success: bool, latency: float, cause: Optional[str] = None):
        """Record one fetch attempt. ``latency`` is in seconds."""
        with self._lock:
            self.request_count += 1
            if success:
                self.successful_requests += 1
                self.response_times.append(latency * 1000)
            else:
                self.failed_requests += 1
                self.failures_by_cause[cause or 'unexpected'] += 1

        self.prometheus_metrics['requests_total'].inc()
        if success:
            self.prometheus_metrics['response_time_seconds'].observe(latency)
        else:
            self.prometheus_metrics['errors_total'].labels(cause=cause or 'unexpected').inc()

    def record_page(self, total_words: int, link_count: int):
        """Record a completed page."""
        with self._lock:
            self.words_per_page.append(total_words)
            self.links_per_page.append(link_count)

        self.prometheus_metrics['pages_crawled_total'].inc()
        self.prometheus_metrics['words_counted_total'].inc(total_words)

    def record_robots_blocked(self):
        with self._lock:
            self.robots_blocked += 1
        self.prometheus_metrics['robots_blocked_total'].inc()

    def sample_concurrency(self, active: int):
        """Record the number of in-flight claims at a claim event."""
        with self._lock:
            self.concurrent_peaks.append(active)
        self.prometheus_metrics['active_workers'].set(active)

    def update_frontier_size(self, size: int):
        self.prometheus_metrics['queue_size'].set(size)

    def start(self):
        """Mark the start of the run; throughput is measured from here."""
        with self._lock:
            self.start_time = time.monotonic()
            self.end_time = None

    def finish(self):
        """Freeze the run's end time so later summaries are stable."""
        with self._lock:
            if self.end_time is None:
                self.end_time = time.monotonic()

    def summary(self) -> MetricsSummary:
        """Compute throughput, success rate and concurrency statistics."""
        with self._lock:
            end = self.end_time if self.end_time is not None else time.monotonic()
            elapsed = end - self.start_time
            pages = len(self.words_per_page)
            pages_per_second = pages / elapsed if elapsed > 0 else 0.0

            return MetricsSummary(
                total_execution_time=elapsed,
                request_count=self.request_count,
                successful_requests=self.successful_requests,
                failed_requests=self.failed_requests,
                robots_blocked=self.robots_blocked,
                success_rate=(self.successful_requests / self.request_count * 100
                              if self.request_count else 0.0),
                average_response_time=_average(self.response_times),
                average_words_per_page=_average(self.words_per_page),
                average_links_per_page=_average(self.links_per_page),
                pages_crawled=pages,
                pages_per_second=pages_per_second,
                pages_per_minute=pages_per_second * 60,
                max_concurrency=max(self.concurrent_peaks, default=0),
                avg_concurrency=_average(self.concurrent_peaks),
                efficiency=pages_per_second * 100 / self.concurrency if self.concurrency else 0.0,
                failures_by_cause=dict(self.failures_by_cause),
            )
