import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from wordcrawler.utils.config import CrawlerConfig


Page = Union[str, Callable]


@dataclass
class Site:
    """A local HTTP site plus the log of every request it received."""
    base: str
    requests: List[Tuple[str, float]] = field(default_factory=list)

    def url(self, path: str) -> str:
        return f"{self.base}{path}"

    def paths(self, include_robots: bool = False) -> List[str]:
        return [path for path, _ in self.requests
                if include_robots or path != '/robots.txt']

    def request_times(self) -> List[float]:
        return [ts for path, ts in self.requests if path != '/robots.txt']


def html_page(body: str, title: str = 'Test page') -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


@pytest.fixture
async def serve():
    """Start local sites from a ``path -> html or handler`` mapping."""
    servers = []

    async def _serve(pages: Dict[str, Page], robots_txt: Optional[str] = None) -> Site:
        site = Site(base='')

        async def handle(request: web.Request):
            site.requests.append((request.path, time.monotonic()))

            page = pages.get(request.path)
            if page is None and request.path == '/robots.txt' and robots_txt is not None:
                return web.Response(text=robots_txt, content_type='text/plain')

            if page is None:
                raise web.HTTPNotFound()
            if callable(page):
                return await page(request)
            return web.Response(text=page, content_type='text/html')

        app = web.Application()
        app.router.add_route('GET', '/{tail:.*}', handle)

        server = TestServer(app)
        await server.start_server()
        servers.append(server)

        site.base = f"http://{server.host}:{server.port}"
        return site

    yield _serve

    for server in servers:
        await server.close()


@pytest.fixture
def make_config():
    def _make(seed_url: str = 'http://example.com/', **overrides) -> CrawlerConfig:
        settings = {
            'seed_url': seed_url,
            'max_depth': 2,
            'concurrency': 3,
            'delay_ms': 0,
            'request_timeout_ms': 2000,
            'robots_timeout_ms': 2000,
        }
        settings.update(overrides)
        return CrawlerConfig(**settings)

    return _make
