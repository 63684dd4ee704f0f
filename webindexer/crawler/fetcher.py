"""
Page fetcher for http(s) and file URLs.
"""

import asyncio
import aiohttp
import logging
import mimetypes
import time
from pathlib import Path
from typing import Optional, Dict
from urllib.parse import urlparse
from urllib.request import url2pathname
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


DEFAULT_USER_AGENT = 'webindexer/1.0 (+keyword crawler)'
DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024

TEXT_TYPES = (
    'text/html',
    'text/plain',
    'text/xml',
    'application/xml',
    'application/xhtml+xml',
    'application/json',
    'application/ld+json'
)


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    error: Optional[str] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None


def decode_content(content_bytes: bytes, encoding: Optional[str] = None) -> str:
    """Decode bytes, falling back through common encodings."""
    try:
        return content_bytes.decode(encoding or 'utf-8')
    except (UnicodeDecodeError, LookupError):
        for fallback_encoding in ['utf-8', 'latin-1', 'cp1252']:
            try:
                return content_bytes.decode(fallback_encoding)
            except UnicodeDecodeError:
                continue

        return content_bytes.decode('utf-8', errors='ignore')


class WebFetcher:
    """
    Fetches pages over HTTP(S) or from the local filesystem.

    Retrieval problems never raise; they come back as a FetchResult with
    ``error`` set.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, request_timeout: int = 30,
                 max_concurrent_requests: int = 10,
                 max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.max_content_bytes = max_content_bytes

        self.logger = logging.getLogger(__name__)

        self.session: Optional[ClientSession] = None

        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'total_bytes_downloaded': 0
        }

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Initialize the fetcher session."""
        if self.session is None:
            timeout = ClientTimeout(total=self.request_timeout)
            headers = {'User-Agent': self.user_agent}

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_concurrent_requests * 2,
                    limit_per_host=10,
                    ttl_dns_cache=300,
                    use_dns_cache=True
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch

        Returns:
            FetchResult object containing the content or error information
        """
        start_time = time.time()
        self.stats['total_requests'] += 1

        try:
            scheme = urlparse(url).scheme.lower()
            if scheme == 'file':
                result = await self._fetch_file(url, start_time)
            elif scheme in ('http', 'https'):
                result = await self._fetch_http(url, start_time)
            else:
                result = FetchResult(
                    url=url,
                    status_code=0,
                    error=f"Unsupported URL scheme: {scheme or '(none)'}",
                    fetch_time=time.time() - start_time
                )

        except asyncio.TimeoutError:
            self.logger.warning(f"Timeout fetching {url}")
            result = FetchResult(url=url, status_code=0, error="Request timeout",
                                 fetch_time=time.time() - start_time)

        except ClientError as e:
            self.logger.warning(f"Client error fetching {url}: {e}")
            result = FetchResult(url=url, status_code=0, error=f"Client error: {str(e)}",
                                 fetch_time=time.time() - start_time)

        except OSError as e:
            self.logger.warning(f"I/O error fetching {url}: {e}")
            result = FetchResult(url=url, status_code=0, error=f"I/O error: {str(e)}",
                                 fetch_time=time.time() - start_time)

        except Exception as e:
            self.logger.error(f"Unexpected error fetching {url}: {e}")
            result = FetchResult(url=url, status_code=0, error=f"Unexpected error: {str(e)}",
                                 fetch_time=time.time() - start_time)

        if result.ok:
            self.stats['successful_requests'] += 1
            self.stats['total_bytes_downloaded'] += len(result.content)
        else:
            self.stats['failed_requests'] += 1

        return result

    async def _fetch_http(self, url: str, start_time: float) -> FetchResult:
        if self.session is None:
            await self.start()

        async with self.session.get(url) as response:
            fetch_time = time.time() - start_time
            content_type = response.headers.get('content-type', '').lower()

            if response.status >= 400:
                self.logger.debug(f"HTTP {response.status} for {url}")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content_type=content_type,
                    error=f"HTTP status {response.status}",
                    fetch_time=fetch_time
                )

            # Only download text content
            if not self._is_text_content(content_type):
                self.logger.debug(f"Skipping non-text content: {url} ({content_type})")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content_type=content_type,
                    error="Non-text content type",
                    fetch_time=fetch_time
                )

            content = await self._read_content_safely(response)
            if content is None:
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content_type=content_type,
                    error="Content too large or unreadable",
                    fetch_time=time.time() - start_time
                )

            self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")
            return FetchResult(
                url=url,
                status_code=response.status,
                content=content,
                content_type=content_type,
                encoding=response.charset,
                fetch_time=time.time() - start_time
            )

    async def _fetch_file(self, url: str, start_time: float) -> FetchResult:
        path = Path(url2pathname(urlparse(url).path))
        content_type, _ = mimetypes.guess_type(path.name)
        content_type = content_type or ''

        if content_type and not (content_type.startswith('text/') or self._is_text_content(content_type)):
            return FetchResult(
                url=url,
                status_code=0,
                content_type=content_type,
                error="Non-text content type",
                fetch_time=time.time() - start_time
            )

        size = await asyncio.to_thread(lambda: path.stat().st_size)
        if size > self.max_content_bytes:
            self.logger.warning(f"Content too large ({size} bytes): {url}")
            return FetchResult(
                url=url,
                status_code=0,
                content_type=content_type,
                error="Content too large or unreadable",
                fetch_time=time.time() - start_time
            )

        content_bytes = await asyncio.to_thread(path.read_bytes)

        if not content_type:
            # Unknown extension: accept only what decodes as UTF-8 text
            try:
                content = content_bytes.decode('utf-8')
            except UnicodeDecodeError:
                return FetchResult(
                    url=url,
                    status_code=0,
                    error="Non-text content",
                    fetch_time=time.time() - start_time
                )
            if '\x00' in content:
                return FetchResult(
                    url=url,
                    status_code=0,
                    error="Non-text content",
                    fetch_time=time.time() - start_time
                )
        else:
            content = decode_content(content_bytes)

        self.logger.debug(f"Read {url} ({len(content_bytes)} bytes)")
        return FetchResult(
            url=url,
            status_code=200,
            content=content,
            content_type=content_type or None,
            fetch_time=time.time() - start_time
        )

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        return any(text_type in content_type for text_type in TEXT_TYPES)

    async def _read_content_safely(self, response) -> Optional[str]:
        """
        Safely read response content with size limit.

        Args:
            response: aiohttp response object

        Returns:
            Content string or None if too large
        """
        max_size = self.max_content_bytes
        content_length = response.headers.get('content-length')
        if content_length and content_length.isdigit() and int(content_length) > max_size:
            self.logger.warning(f"Content too large ({content_length} bytes): {response.url}")
            return None

        # Read content in chunks to respect size limit
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > max_size:
                self.logger.warning(f"Content exceeded size limit during reading: {response.url}")
                return None

        return decode_content(content_bytes, response.charset)

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        return self.stats.copy()
