"""
Configuration management for the keyword crawler.
"""

import yaml
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, fields


@dataclass
class CrawlerConfig:
    """Configuration for crawler behavior."""
    seed_urls: List[str] = field(default_factory=list)
    max_pages: int = 100
    max_workers: int = 10
    request_timeout: int = 30
    max_content_bytes: int = 10 * 1024 * 1024
    user_agent: str = 'webindexer/1.0 (+keyword crawler)'
    allowed_domains: List[str] = field(default_factory=list)
    blocked_domains: List[str] = field(default_factory=list)
    stats_interval: float = 30.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawler.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    console_level: str = 'WARNING'
    json: bool = False


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _build_section(section_cls, data: Optional[Dict[str, Any]], name: str):
    if data is None:
        return section_cls()
    if not isinstance(data, dict):
        raise ValueError(f"Configuration section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' section: {', '.join(sorted(unknown))}")

    return section_cls(**data)


def validate_config(config: Config):
    """Validate configuration values."""
    if config.crawler.max_pages < 1:
        raise ValueError("max_pages must be at least 1")

    if config.crawler.max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    if config.crawler.request_timeout <= 0:
        raise ValueError("request_timeout must be positive")

    if config.crawler.stats_interval <= 0:
        raise ValueError("stats_interval must be positive")

    for level in (config.logging.level, config.logging.console_level):
        if level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level}")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            config_data = yaml.safe_load(file) or {}

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must contain a mapping")

        unknown = set(config_data) - {'crawler', 'logging', 'monitoring'}
        if unknown:
            raise ValueError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        self._config = Config(
            crawler=_build_section(CrawlerConfig, config_data.get('crawler'), 'crawler'),
            logging=_build_section(LoggingConfig, config_data.get('logging'), 'logging'),
            monitoring=_build_section(MonitoringConfig, config_data.get('monitoring'), 'monitoring')
        )

        validate_config(self._config)
        logging.getLogger(__name__).debug("Configuration validation passed")
        return self._config

    def use_defaults(self) -> Config:
        """Use built-in defaults instead of a file."""
        self._config = Config()
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config

