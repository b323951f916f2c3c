"""
Logging for crawl runs.

Workers log through a ``CrawlerLogAdapter`` bound to their worker id, so every
line carries ``[Worker-N]`` and, in JSON mode, structured ``worker_id`` and
``url`` fields. ``setup_logging`` wires console and rotating-file handlers from
the ``logging`` section of the config.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from .config import LoggingConfig


# Loggers whose INFO/DEBUG output is per-connection chatter during a crawl
CHATTY_LOGGERS = ('aiohttp', 'asyncio')


class JSONFormatter(logging.Formatter):
    """One JSON object per line; crawl context is flattened into the object."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        context = getattr(record, 'extra_fields', None)
        if context:
            entry.update(context)

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the worker id and carries crawl context."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.setdefault('extra', {})
        extra_fields = dict(self.extra)
        extra_fields.update(extra.get('extra_fields', {}))
        extra['extra_fields'] = extra_fields

        worker_id = self.extra.get('worker_id')
        if worker_id is not None:
            msg = f"[{worker_id}] {msg}"

        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str, **kwargs):
        """Log an event about a specific URL, tagging it for JSON consumers."""
        extra = kwargs.setdefault('extra', {})
        extra['extra_fields'] = {'url': url, 'event_type': 'url_event'}
        self.log(level, message, **kwargs)


class ThirdPartyNoiseFilter(logging.Filter):
    """Drop below-WARNING records from aiohttp and asyncio."""

    def __init__(self, noisy_prefixes=CHATTY_LOGGERS):
        super().__init__()
        self.noisy_prefixes = tuple(noisy_prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.WARNING:
            return True
        return not any(record.name == prefix or record.name.startswith(prefix + '.')
                       for prefix in self.noisy_prefixes)


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """
    Configure the root logger for a crawl run.

    Console output goes to stderr so the end-of-run summary on stdout stays
    clean. When ``config.file`` is set, a rotating file handler records
    everything down to DEBUG.

    Returns:
        The configured root logger
    """
    level = logging.getLevelName(config.level.upper())

    if config.json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(config.format)

    noise_filter = ThirdPartyNoiseFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if config.file else level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(noise_filter)
    root_logger.addHandler(console_handler)

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=20 * 1024 * 1024,
            backupCount=3,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(noise_filter)
        root_logger.addHandler(file_handler)

    logging.getLogger('aiohttp.access').setLevel(logging.WARNING)

    root_logger.debug(f"Logging initialized: level={config.level.upper()}, "
                      f"file={config.file or '-'}, json={config.json}")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """Logger bound to crawl context such as ``worker_id``."""
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)


def log_system_info():
    """Log the host resources a crawl run has to work with."""
    import platform
    import aiohttp
    import psutil

    logger = logging.getLogger(__name__)
    memory = psutil.virtual_memory()

    logger.info(f"Platform: {platform.platform()} | Python {sys.version.split()[0]} | "
                f"aiohttp {aiohttp.__version__}")
    logger.info(f"CPU cores: {psutil.cpu_count()} | "
                f"Memory available: {memory.available / 1024**3:.1f} of {memory.total / 1024**3:.1f} GB")


_MISSING = object()


class LoggingContext:
    """Temporarily bind extra fields (e.g. the URL being processed) to an adapter."""

    def __init__(self, logger: CrawlerLogAdapter, **context):
        self.logger = logger
        self.context = context
        self._previous: Dict[str, Any] = {}

    def __enter__(self):
        for key, value in self.context.items():
            self._previous[key] = self.logger.extra.get(key, _MISSING)
            self.logger.extra[key] = value
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        for key, value in self._previous.items():
            if value is _MISSING:
                self.logger.extra.pop(key, None)
            else:
                self.logger.extra[key] = value
        self._previous = {}
