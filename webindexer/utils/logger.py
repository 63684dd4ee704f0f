"""
Logging setup for the web indexer.

Console output goes to stderr; stdout belongs to the query prompt.
"""

import logging
import logging.handlers
import json
import platform
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone

import psutil

from .config import LoggingConfig


# Fields that CrawlerLogAdapter attaches to records
CONTEXT_FIELDS = ('worker_id', 'url', 'event_type')


class JSONFormatter(logging.Formatter):
    """One JSON object per record, including any worker/URL context."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Prefixes messages with the worker id and attaches URL context."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}

        worker_id = self.extra.get('worker_id')
        if worker_id:
            msg = f"[{worker_id}] {msg}"
        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str, **kwargs):
        """Log an event about a single fetched URL."""
        kwargs['extra'] = {**kwargs.get('extra', {}), 'url': url, 'event_type': 'url_event'}
        self.log(level, message, **kwargs)


def _rotating_handler(path: Path, level: int, max_mb: int, backups: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(config: LoggingConfig) -> logging.Logger:
    """
    Install stderr, crawl-log and error-log handlers on the root logger.

    The error log is written next to ``config.file`` as ``errors.log``.
    Returns the root logger.
    """
    log_file = Path(config.file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = JSONFormatter() if config.json else logging.Formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, config.level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, config.console_level.upper()))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.addHandler(_rotating_handler(log_file, logging.DEBUG, 50, 5, formatter))
    root_logger.addHandler(
        _rotating_handler(log_file.parent / 'errors.log', logging.ERROR, 10, 3, formatter)
    )

    # aiohttp logs every connection at DEBUG
    logging.getLogger('aiohttp').setLevel(logging.WARNING)

    root_logger.debug(f"Logging to {log_file} at {config.level}")
    return root_logger


def get_crawler_logger(name: str, **extra_context) -> CrawlerLogAdapter:
    """Logger for ``name`` that tags every record with ``extra_context``."""
    return CrawlerLogAdapter(logging.getLogger(name), extra_context)


def log_system_info():
    logging.getLogger(__name__).info(
        f"Host: {platform.platform()}, Python {platform.python_version()}, "
        f"{psutil.cpu_count()} CPUs, "
        f"{psutil.virtual_memory().total / 1024**3:.1f} GB memory"
    )
