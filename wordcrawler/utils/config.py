"""
Configuration management for the word-frequency crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from urllib.parse import urlparse
from dataclasses import dataclass, field, fields


DEFAULT_USER_AGENT = 'ConcurrentWebCrawler/1.0 (+educational-purpose)'


class ConfigError(ValueError):
    """Raised when configuration values are missing or invalid."""
    pass


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_url: str = ''
    max_depth: int = 2
    concurrency: int = 5
    delay_ms: int = 500
    request_timeout_ms: int = 10000
    robots_timeout_ms: int = 5000
    max_redirects: int = 3
    max_pages_per_domain: int = 50
    max_links_per_page: int = 10
    frontier_capacity: int = 1000
    user_agent: str = DEFAULT_USER_AGENT
    respect_robots_txt: bool = True

    @property
    def delay(self) -> float:
        """Per-host politeness interval in seconds."""
        return self.delay_ms / 1000.0

    @property
    def request_timeout(self) -> float:
        """Request timeout in seconds."""
        return self.request_timeout_ms / 1000.0

    @property
    def robots_timeout(self) -> float:
        return self.robots_timeout_ms / 1000.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False
    stats_interval: float = 30.0


@dataclass
class OutputConfig:
    """Configuration for result files."""
    directory: str = 'data'
    top_words: int = 200


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    """Build a config dataclass from a mapping, rejecting unknown keys."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {', '.join(sorted(unknown))}")

    return section_cls(**data)


def validate_config(config: Config):
    """Validate configuration values."""
    crawler = config.crawler

    # Validate seed URL
    if not crawler.seed_url:
        raise ConfigError("A seed URL must be provided")

    parsed = urlparse(crawler.seed_url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise ConfigError(f"Seed URL must be an absolute http(s) URL: {crawler.seed_url}")

    # Validate numeric values
    if crawler.max_depth < 0:
        raise ConfigError("max_depth must be non-negative")

    if crawler.concurrency < 1:
        raise ConfigError("concurrency must be at least 1")

    if crawler.delay_ms < 0:
        raise ConfigError("delay_ms must be non-negative")

    if crawler.request_timeout_ms <= 0:
        raise ConfigError("request_timeout_ms must be positive")

    if crawler.robots_timeout_ms <= 0:
        raise ConfigError("robots_timeout_ms must be positive")

    if crawler.max_redirects < 0:
        raise ConfigError("max_redirects must be non-negative")

    if crawler.frontier_capacity < 1:
        raise ConfigError("frontier_capacity must be at least 1")

    if crawler.max_links_per_page < 0:
        raise ConfigError("max_links_per_page must be non-negative")

    if crawler.max_pages_per_domain < 1:
        raise ConfigError("max_pages_per_domain must be at least 1")

    if not isinstance(logging.getLevelName(config.logging.level.upper()), int):
        raise ConfigError(f"Unknown log level: {config.logging.level}")

    logging.getLogger(__name__).debug("Configuration validation passed")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """Load configuration from YAML file.

        Args:
            overrides: Crawler settings that take precedence over the file
                (typically command-line flags). ``None`` values are ignored.
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        if not isinstance(config_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        crawler_data = dict(config_data.get('crawler') or {})
        if overrides:
            crawler_data.update({k: v for k, v in overrides.items() if v is not None})

        # Parse configuration sections
        self._config = Config(
            crawler=_build_section(CrawlerConfig, crawler_data, 'crawler'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring'),
            output=_build_section(OutputConfig, config_data.get('output'), 'output'),
        )

        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml",
                overrides: Optional[Dict[str, Any]] = None) -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config(overrides)
