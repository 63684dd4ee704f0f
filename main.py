#!/usr/bin/env python3
"""
Main entry point for the web indexer.
"""

import asyncio
import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, List, Optional

from webindexer import __version__
from webindexer.crawler.coordinator import CrawlCoordinator
from webindexer.crawler.fetcher import WebFetcher
from webindexer.crawler.messages import Query
from webindexer.crawler.parser import ContentParser
from webindexer.crawler.worker import FetchWorker
from webindexer.session import QuerySession
from webindexer.storage.page_index import PageIndex
from webindexer.utils.config import Config, ConfigManager, validate_config
from webindexer.utils.logger import setup_logging, log_system_info
from webindexer.utils.monitoring import initialize_monitoring


class IndexerApp:
    """Main application class for the web indexer."""

    def __init__(self, input_func: Callable[[str], str] = input,
                 output_func: Callable[[str], None] = print):
        self.input_func = input_func
        self.output_func = output_func
        self.coordinator: Optional[CrawlCoordinator] = None
        self.fetcher: Optional[WebFetcher] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Turn SIGINT/SIGTERM into an empty query, which terminates the coordinator."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            if self.coordinator:
                self.coordinator.submit(Query(terms=()))

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # Not supported on Windows event loops; Ctrl-C still raises KeyboardInterrupt
                pass

    def remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(signum)
            except NotImplementedError:
                pass

    async def run(self, config: Config, seed_urls: List[str]) -> int:
        """Crawl from the seed URLs and serve queries until an empty query."""
        crawler_config = config.crawler

        self.logger.info("=== WEB INDEXER STARTING ===")
        self.logger.info(f"Seed URLs: {seed_urls}")
        self.logger.info(f"Max pages: {crawler_config.max_pages}")
        self.logger.info(f"Max workers: {crawler_config.max_workers}")

        monitor = initialize_monitoring(
            enable_prometheus=config.monitoring.metrics_enabled,
            prometheus_port=config.monitoring.prometheus_port
        )

        self.fetcher = WebFetcher(
            user_agent=crawler_config.user_agent,
            request_timeout=crawler_config.request_timeout,
            max_concurrent_requests=crawler_config.max_workers,
            max_content_bytes=crawler_config.max_content_bytes
        )

        try:
            await self.fetcher.start()

            parser = ContentParser(
                allowed_domains=crawler_config.allowed_domains,
                blocked_domains=crawler_config.blocked_domains
            )

            self.coordinator = CrawlCoordinator(
                worker_factory=self._make_worker,
                max_pages=crawler_config.max_pages,
                max_workers=crawler_config.max_workers,
                index=PageIndex(parser),
                monitor=monitor,
                stats_interval=crawler_config.stats_interval
            )
            self.setup_signal_handlers()

            coordinator_task = asyncio.create_task(self.coordinator.run())
            self.coordinator.start_indexing(seed_urls)

            session = QuerySession(self.coordinator.mailbox, input_func=self.input_func,
                                   output_func=self.output_func)
            session_task = asyncio.create_task(session.run())

            await asyncio.wait({coordinator_task, session_task},
                               return_when=asyncio.FIRST_COMPLETED)

            exit_code = 0
            if session_task.done() and session_task.exception() is not None:
                self.logger.error(f"Query session failed: {session_task.exception()!r}")
                self.coordinator.submit(Query(terms=()))
                exit_code = 1

            await coordinator_task

            # A session blocked on input is abandoned, not drained
            if not session_task.done():
                session_task.cancel()
                try:
                    await session_task
                except asyncio.CancelledError:
                    pass

            self.logger.info(f"Final stats: {self.coordinator.get_stats()}")

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            self.remove_signal_handlers()
            await self.fetcher.close()
            self.logger.info("=== WEB INDEXER FINISHED ===")

        return exit_code

    def _make_worker(self, worker_id: str) -> FetchWorker:
        return FetchWorker(worker_id, self.fetcher, self.coordinator.mailbox)


def build_config(args: argparse.Namespace) -> Config:
    """Load the config file (or defaults) and apply command-line overrides."""
    manager = ConfigManager(args.config)
    if Path(args.config).exists():
        config = manager.load_config()
    else:
        config = manager.use_defaults()

    if args.max_pages is not None:
        config.crawler.max_pages = args.max_pages
    if args.max_workers is not None:
        config.crawler.max_workers = args.max_workers
    if args.log_level is not None:
        config.logging.level = args.log_level

    validate_config(config)
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Web Indexer: crawl from seed URLs, then answer keyword queries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py https://example.com/                 # Crawl with defaults (100 pages)
  python main.py --max-pages 20 https://example.com/  # Smaller budget
  python main.py --config my_config.yaml              # Seeds and limits from a config file
  python main.py file:///path/to/site/index.html      # Crawl local files

Enter an empty query to quit.
        """
    )

    parser.add_argument(
        'seed_urls',
        nargs='*',
        help='URLs to start crawling from (default: crawler.seed_urls from the config file)'
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml, built-in defaults if missing)'
    )

    parser.add_argument(
        '--max-pages',
        type=int,
        help='Maximum number of pages to visit'
    )

    parser.add_argument(
        '--max-workers',
        type=int,
        help='Maximum number of concurrent fetch workers'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Override the configured log level'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Web Indexer {__version__}'
    )

    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    seed_urls = args.seed_urls or config.crawler.seed_urls
    if not seed_urls:
        print("Error: no seed URLs given on the command line or in the configuration.", file=sys.stderr)
        return 1

    setup_logging(config.logging)
    log_system_info()

    app = IndexerApp()
    try:
        return asyncio.run(app.run(config, list(seed_urls)))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
