"""
HTML parser: readable-text extraction and same-site link discovery.
"""

import re
import logging
from typing import List, Optional
from urllib.parse import urljoin, urlparse, urlunparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment


# Structural elements that never carry page content
NON_CONTENT_SELECTOR = (
    'script, style, noscript, nav, header, footer, aside, '
    '.sidebar, .menu, .advertisement'
)

# Elements whose text is concatenated into the page text
CONTENT_SELECTOR = (
    'p, h1, h2, h3, h4, h5, h6, article, main, section, '
    '.content, .post, .entry'
)

SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp', '.ico',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv',
    '.css', '.js', '.woff', '.woff2', '.ttf', '.eot',
)

SKIP_PREFIXES = ('#', 'javascript:', 'mailto:')


@dataclass
class ParsedContent:
    """Container for parsed web page content."""
    url: str
    title: str = ''
    content: str = ''
    links: List[str] = field(default_factory=list)


def normalize_url(url: str) -> str:
    """Drop the fragment and lowercase scheme and host."""
    parsed = urlparse(url)
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        parsed.path or '/',
        parsed.params,
        parsed.query,
        ''  # Remove fragment
    ))


class ContentParser:
    """
    Reduces HTML to readable text and collects same-host links.
    """

    def __init__(self, max_links_per_page: int = 10, min_fragment_length: int = 10):
        self.max_links_per_page = max_links_per_page
        self.min_fragment_length = min_fragment_length
        self.logger = logging.getLogger(__name__)

        self.whitespace_pattern = re.compile(r'\s+')

    def parse(self, url: str, html_content: str, base_url: Optional[str] = None) -> ParsedContent:
        """
        Parse HTML content and extract title, text and links.

        Args:
            url: The URL of the page
            html_content: Raw HTML content
            base_url: URL the content was served from after redirects;
                links are resolved and host-checked against it

        Returns:
            ParsedContent object; empty when the markup cannot be parsed
        """
        try:
            soup = BeautifulSoup(html_content or '', 'lxml')

            # Links come from the whole document, before nav/footer removal
            links = self._extract_links(soup, base_url or url)
            title = self._extract_title(soup)

            for element in soup.select(NON_CONTENT_SELECTOR):
                element.decompose()

            for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
                comment.extract()

            content = self._extract_main_content(soup)

            self.logger.debug(f"Parsed content from {url}: {len(content)} chars, "
                              f"{len(links)} links")

            return ParsedContent(url=url, title=title, content=content, links=links)

        except Exception as e:
            # Malformed markup is treated as an empty page, never as a failure
            self.logger.warning(f"Error parsing content from {url}: {e}")
            return ParsedContent(url=url)

    def _extract_title(self, soup: BeautifulSoup) -> str:
        """Extract page title."""
        title_tag = soup.find('title')
        if title_tag:
            return title_tag.get_text().strip()
        return ''

    def _extract_main_content(self, soup: BeautifulSoup) -> str:
        """Concatenate text of content-bearing elements, falling back to the body."""
        fragments = []
        for element in soup.select(CONTENT_SELECTOR):
            element_text = element.get_text().strip()
            if len(element_text) > self.min_fragment_length:
                fragments.append(element_text)

        text = ' '.join(fragments)

        if not text.strip():
            body = soup.find('body') or soup
            text = body.get_text(separator=' ')

        return text.strip()

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Extract absolute, same-host, deduplicated links in document order."""
        base_host = urlparse(base_url).hostname
        links = {}

        for anchor in soup.find_all('a', href=True):
            href = anchor['href'].strip()
            if not href or href.lower().startswith(SKIP_PREFIXES):
                continue

            link = self._resolve(base_url, href)
            if link is None:
                continue

            if urlparse(link).hostname != base_host:
                continue

            links.setdefault(link, None)

        return list(links)

    def _resolve(self, base_url: str, href: str) -> Optional[str]:
        """Resolve and normalize a link; None if it is unusable."""
        try:
            absolute_url = urljoin(base_url, href)
            parsed = urlparse(absolute_url)

            if parsed.scheme not in ('http', 'https') or not parsed.hostname:
                return None

            if parsed.path.lower().endswith(SKIP_EXTENSIONS):
                return None

            return normalize_url(absolute_url)

        except ValueError:
            return None

    def outbound_links(self, parsed_content: ParsedContent,
                       limit: Optional[int] = None) -> List[str]:
        """Links to propagate into the frontier, capped to bound fan-out."""
        limit = self.max_links_per_page if limit is None else limit
        return parsed_content.links[:limit]
