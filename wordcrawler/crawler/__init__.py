"""
Web crawler core components.
"""

from .url_frontier import URLFrontier
from .fetcher import WebFetcher, FetchResult, FetchErrorType
from .parser import ContentParser, ParsedContent, normalize_url
from .politeness import PolitenessController, RobotsCache
from .tokenizer import Tokenizer, WordFrequency
from .records import FrontierEntry, PageRecord, ErrorRecord, ProgressEvent, CrawlResult
from .scheduler import CrawlerScheduler

__all__ = [
    'URLFrontier', 'FrontierEntry',
    'WebFetcher', 'FetchResult', 'FetchErrorType',
    'ContentParser', 'ParsedContent', 'normalize_url',
    'PolitenessController', 'RobotsCache',
    'Tokenizer', 'WordFrequency',
    'PageRecord', 'ErrorRecord', 'ProgressEvent', 'CrawlResult',
    'CrawlerScheduler',
]
