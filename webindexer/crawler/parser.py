"""
Page parser for extracting visible text, index terms and outbound links.
"""

import re
import logging
from typing import Iterable, List, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse, urlunparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment


# Runs of underscores or non-word characters separate terms
TERM_SEPARATOR = re.compile(r'(?:_|\W)+')

CRAWLABLE_SCHEMES = ('http', 'https', 'file')

SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.ico', '.woff', '.woff2', '.ttf', '.eot'
)


def _split(text: str) -> List[str]:
    return [term.lower() for term in TERM_SEPARATOR.split(text) if term]


def tokenize(text: Optional[str]) -> Set[str]:
    """Split text into a set of lowercase terms."""
    if not text:
        return set()
    return set(_split(text))


def normalize_url(url: str) -> str:
    """Normalize URL by lowercasing scheme and host and removing the fragment."""
    try:
        parsed = urlparse(url)
        return urlunparse((
            parsed.scheme.lower(),
            parsed.netloc.lower(),
            parsed.path,
            parsed.params,
            parsed.query,
            ''
        ))
    except ValueError:
        return url


def split_query_terms(text: Optional[str]) -> Tuple[str, ...]:
    """
    Turn free-text query input into ordered, de-duplicated terms.

    Empty or punctuation-only input gives an empty tuple.
    """
    if not text:
        return ()
    return tuple(dict.fromkeys(_split(text)))


@dataclass
class ParsedContent:
    """Container for parsed page content."""
    url: str
    title: Optional[str] = None
    text: str = ""
    links: List[str] = field(default_factory=list)
    terms: Set[str] = field(default_factory=set)


class ContentParser:
    """
    Parses HTML content to extract searchable text and links.
    """

    def __init__(self, allowed_domains: Optional[Iterable[str]] = None,
                 blocked_domains: Optional[Iterable[str]] = None):
        self.allowed_domains = set(allowed_domains) if allowed_domains else set()
        self.blocked_domains = set(blocked_domains) if blocked_domains else set()
        self.logger = logging.getLogger(__name__)

        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str) -> ParsedContent:
        """
        Parse page content and extract terms and links.

        Args:
            url: The URL of the page, used to resolve relative links
            html_content: Raw page content (HTML or plain text)

        Returns:
            ParsedContent object with extracted data
        """
        try:
            soup = BeautifulSoup(html_content, 'lxml')

            for script in soup(["script", "style", "noscript"]):
                script.decompose()

            for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
                comment.extract()

            parsed_content = ParsedContent(url=url)

            self._extract_title(soup, parsed_content)
            self._extract_text(soup, parsed_content)
            self._extract_links(soup, parsed_content, url)

            parsed_content.terms = tokenize(parsed_content.text)
            if parsed_content.title:
                parsed_content.terms |= tokenize(parsed_content.title)

            self.logger.debug(f"Parsed content from {url}: {len(parsed_content.terms)} terms, "
                              f"{len(parsed_content.links)} links")

            return parsed_content

        except Exception as e:
            self.logger.error(f"Error parsing content from {url}: {e}")
            return ParsedContent(url=url)

    def _extract_title(self, soup: BeautifulSoup, parsed_content: ParsedContent):
        """Extract page title."""
        title_tag = soup.find('title')
        if title_tag:
            parsed_content.title = self._clean_text(title_tag.get_text())

    def _extract_text(self, soup: BeautifulSoup, parsed_content: ParsedContent):
        """Extract visible text content."""
        content_element = soup.find('body') or soup
        text_content = content_element.get_text(separator=' ', strip=True)
        parsed_content.text = self._clean_text(text_content)

    def _extract_links(self, soup: BeautifulSoup, parsed_content: ParsedContent, base_url: str):
        """Extract and normalize links, keeping document order."""
        links = {}

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue

            absolute_url = urljoin(base_url, href)
            normalized_url = self.normalize_url(absolute_url)

            if normalized_url != self.normalize_url(base_url) and self._is_valid_url(normalized_url):
                links[normalized_url] = None

        parsed_content.links = list(links)

    def normalize_url(self, url: str) -> str:
        return normalize_url(url)

    def _is_valid_url(self, url: str) -> bool:
        """Check if URL is valid for crawling."""
        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        if parsed.scheme not in CRAWLABLE_SCHEMES:
            return False

        # file URLs carry no host
        if parsed.scheme != 'file':
            if not parsed.netloc:
                return False

            domain = parsed.netloc.lower()

            if any(blocked in domain for blocked in self.blocked_domains):
                return False

            if self.allowed_domains and not any(allowed in domain for allowed in self.allowed_domains):
                return False

        path = parsed.path.lower()
        if path.endswith(SKIP_EXTENSIONS):
            return False

        return True

    def _clean_text(self, text: str) -> str:
        """Collapse whitespace."""
        if not text:
            return ""
        return self.whitespace_pattern.sub(' ', text.strip())
