"""
Web page fetcher: bounded-time HTTP GET with a redirect limit.
"""

import asyncio
import aiohttp
import logging
import time
from enum import Enum
from typing import Optional, Dict
from dataclasses import dataclass
from aiohttp import ClientSession, ClientTimeout, ClientError


class FetchErrorType(Enum):
    """Typed cause of a failed fetch."""
    TIMEOUT = 'timeout'
    HTTP_STATUS = 'http_status'
    TOO_MANY_REDIRECTS = 'too_many_redirects'
    NON_TEXT_CONTENT = 'non_text_content'
    TRANSPORT = 'transport'


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status_code: int
    content: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    error: Optional[str] = None
    error_type: Optional[FetchErrorType] = None
    fetch_time: float = 0.0
    content_type: Optional[str] = None
    encoding: Optional[str] = None
    final_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class WebFetcher:
    """
    Fetches web pages with a fixed timeout and a bounded number of redirects.

    Per-URL failures never raise: they come back as a ``FetchResult`` whose
    ``error_type`` names the cause. No retries are performed here.
    """

    def __init__(self, user_agent: str, request_timeout: float = 10.0,
                 max_redirects: int = 3, max_connections: int = 10,
                 max_content_size: int = 10 * 1024 * 1024):
        self.user_agent = user_agent
        self.request_timeout = request_timeout
        self.max_redirects = max_redirects
        self.max_connections = max_connections
        self.max_content_size = max_content_size

        self.logger = logging.getLogger(__name__)
        self.session: Optional[ClientSession] = None

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
            headers = {
                'User-Agent': self.user_agent,
                'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
                'Accept-Language': 'en-US,en;q=0.5',
            }

            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers=headers,
                connector=aiohttp.TCPConnector(
                    limit=self.max_connections * 2,
                    limit_per_host=self.max_connections,
                    ttl_dns_cache=300,
                )
            )
            self.logger.info("WebFetcher session started")

    async def close(self):
        """Close the fetcher session."""
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.info("WebFetcher session closed")

    async def fetch(self, url: str, timeout: Optional[float] = None,
                    text_only: bool = True) -> FetchResult:
        """
        Fetch a single URL.

        Args:
            url: The URL to fetch
            timeout: Overrides the session timeout (seconds) for this request
            text_only: Reject responses whose content type is not text-based

        Returns:
            FetchResult object containing the response data or error information
        """
        if self.session is None:
            await self.start()

        start_time = time.monotonic()
        # aiohttp raises once the redirect count reaches the limit, and treats
        # 0 as unlimited, so allow exactly max_redirects hops with limit + 1
        request_kwargs = {'max_redirects': self.max_redirects + 1}
        if timeout is not None:
            request_kwargs['timeout'] = ClientTimeout(total=timeout)

        try:
            async with self.session.get(url, **request_kwargs) as response:
                headers = dict(response.headers)
                content_type = response.headers.get('content-type', '').lower()

                if not 200 <= response.status < 300:
                    self.logger.debug(f"HTTP {response.status} for {url}")
                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        headers=headers,
                        content_type=content_type,
                        error=f"HTTP {response.status}",
                        error_type=FetchErrorType.HTTP_STATUS,
                        fetch_time=time.monotonic() - start_time,
                        final_url=str(response.url)
                    )

                if text_only and not self._is_text_content(content_type):
                    self.logger.debug(f"Skipping non-text content: {url} ({content_type})")
                    return FetchResult(
                        url=url,
                        status_code=response.status,
                        headers=headers,
                        content_type=content_type,
                        error=f"Non-text content type: {content_type or 'unknown'}",
                        error_type=FetchErrorType.NON_TEXT_CONTENT,
                        fetch_time=time.monotonic() - start_time,
                        final_url=str(response.url)
                    )

                content = await self._read_content_safely(response)
                fetch_time = time.monotonic() - start_time

                self.logger.debug(f"Fetched {url}: {response.status} ({len(content)} chars)")
                return FetchResult(
                    url=url,
                    status_code=response.status,
                    content=content,
                    headers=headers,
                    content_type=content_type,
                    encoding=response.charset,
                    fetch_time=fetch_time,
                    final_url=str(response.url)
                )

        except asyncio.TimeoutError:
            error_type = FetchErrorType.TIMEOUT
            error_msg = "timeout"
            self.logger.debug(f"Timeout fetching {url}")

        except aiohttp.TooManyRedirects as e:
            error_type = FetchErrorType.TOO_MANY_REDIRECTS
            error_msg = f"Too many redirects (>{self.max_redirects})"
            self.logger.debug(f"Redirect limit exceeded for {url}: {e}")

        except (ClientError, ValueError) as e:
            error_type = FetchErrorType.TRANSPORT
            error_msg = f"Client error: {e}"
            self.logger.debug(f"Client error fetching {url}: {e}")

        return FetchResult(
            url=url,
            status_code=0,
            error=error_msg,
            error_type=error_type,
            fetch_time=time.monotonic() - start_time
        )

    async def fetch_text(self, url: str, timeout: Optional[float] = None) -> Optional[str]:
        """Fetch a plain-text resource (robots.txt). Returns None on any failure."""
        result = await self.fetch(url, timeout=timeout, text_only=False)
        if not result.ok:
            return None
        return result.content

    def _is_text_content(self, content_type: str) -> bool:
        """Check if content type is text-based."""
        if not content_type:
            # Servers that omit the header usually serve HTML.
            return True

        text_types = [
            'text/html',
            'text/plain',
            'text/xml',
            'application/xml',
            'application/xhtml+xml',
        ]

        return any(text_type in content_type for text_type in text_types)

    async def _read_content_safely(self, response) -> str:
        """
        Read response content with a size limit.

        Bodies larger than ``max_content_size`` are truncated at the limit.
        """
        content_bytes = b''
        async for chunk in response.content.iter_chunked(8192):
            content_bytes += chunk
            if len(content_bytes) > self.max_content_size:
                self.logger.warning(f"Content exceeded size limit, truncating: {response.url}")
                content_bytes = content_bytes[:self.max_content_size]
                break

        # Decode content
        encoding = response.charset or 'utf-8'
        try:
            return content_bytes.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            for fallback_encoding in ['utf-8', 'cp1252']:
                try:
                    return content_bytes.decode(fallback_encoding)
                except UnicodeDecodeError:
                    continue

            return content_bytes.decode('latin-1')
