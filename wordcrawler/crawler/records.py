"""
Immutable records produced by a crawl run.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .tokenizer import rank_words
from ..utils.monitoring import MetricsSummary


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class FrontierEntry:
    """A URL waiting in the frontier, with its distance from the seed."""
    url: str
    depth: int


@dataclass(frozen=True)
class PageRecord:
    """Everything captured for one successfully processed page."""
    url: str
    depth: int
    title: str
    word_count: int
    total_words: int
    link_count: int
    timestamp: str
    response_time: float
    text_length: int
    words: Mapping[str, int]
    links: Tuple[str, ...]
    processed_by: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'depth': self.depth,
            'title': self.title,
            'word_count': self.word_count,
            'total_words': self.total_words,
            'link_count': self.link_count,
            'timestamp': self.timestamp,
            'response_time': self.response_time,
            'text_length': self.text_length,
            'words': dict(self.words),
            'links': list(self.links),
            'processed_by': self.processed_by,
        }


@dataclass(frozen=True)
class ErrorRecord:
    """A per-URL failure. The crawl always continues past it."""
    url: str
    message: str
    cause: str
    worker_id: str
    timestamp: str = field(default_factory=utc_timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per completed page to the progress callback."""
    worker_id: str
    url: str
    depth: int
    total_pages: int
    total_words: int
    response_time: float


@dataclass(frozen=True)
class CrawlResult:
    """Read-only bundle handed to reporting once the crawl is quiescent."""
    pages: Tuple[PageRecord, ...]
    word_frequency: Mapping[str, int]
    total_words: int
    metrics: MetricsSummary
    errors: Tuple[ErrorRecord, ...]
    seed_url: Optional[str] = None
    max_depth: Optional[int] = None
    concurrency: Optional[int] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def build(cls, pages: List[PageRecord], word_frequency: Dict[str, int],
              total_words: int, metrics: MetricsSummary,
              errors: List[ErrorRecord], **metadata) -> 'CrawlResult':
        return cls(
            pages=tuple(pages),
            word_frequency=MappingProxyType(dict(word_frequency)),
            total_words=total_words,
            metrics=metrics,
            errors=tuple(errors),
            **metadata
        )

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    @property
    def unique_words(self) -> int:
        return len(self.word_frequency)

    def top_words(self, limit: int = 50) -> List[Tuple[str, int, float]]:
        """Most frequent words as (word, count, percentage) rows."""
        return rank_words(self.word_frequency.items(), self.total_words, limit)

    def to_dict(self, top_words: int = 50) -> Dict[str, Any]:
        return {
            'metadata': {
                'seed_url': self.seed_url,
                'started_at': self.started_at,
                'finished_at': self.finished_at,
                'total_pages': self.total_pages,
                'total_words': self.total_words,
                'unique_words': self.unique_words,
                'max_depth': self.max_depth,
                'concurrency': self.concurrency,
                'metrics': self.metrics.to_dict(),
            },
            'pages': [page.to_dict() for page in self.pages],
            'top_words': [
                {'word': word, 'count': count, 'percentage': percentage}
                for word, count, percentage in self.top_words(top_words)
            ],
            'errors': [error.to_dict() for error in self.errors],
        }
