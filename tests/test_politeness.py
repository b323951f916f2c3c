import asyncio
import time

from aiohttp import web

from wordcrawler.crawler.fetcher import WebFetcher
from wordcrawler.crawler.politeness import PolitenessController, RobotsCache, get_host


USER_AGENT = 'ConcurrentWebCrawler/1.0 (+educational-purpose)'


def test_get_host():
    assert get_host('https://Example.com:8080/path') == 'example.com:8080'


async def test_same_host_requests_are_spaced():
    controller = PolitenessController(min_interval=0.1)

    starts = await asyncio.gather(*(controller.wait('http://a.com/page') for _ in range(3)))
    starts = sorted(starts)

    assert starts[1] - starts[0] >= 0.1
    assert starts[2] - starts[1] >= 0.1


async def test_sleeps_until_reserved_slot():
    controller = PolitenessController(min_interval=0.1)
    await controller.wait('http://a.com/1')

    before = time.monotonic()
    reserved = await controller.wait('http://a.com/2')
    assert time.monotonic() >= reserved
    assert reserved - before > 0.05


async def test_different_hosts_do_not_wait_on_each_other():
    controller = PolitenessController(min_interval=1.0)

    before = time.monotonic()
    await asyncio.gather(
        controller.wait('http://a.com/'),
        controller.wait('http://b.com/'),
        controller.wait('http://c.com/'),
    )
    assert time.monotonic() - before < 0.5


async def test_zero_interval_never_sleeps():
    controller = PolitenessController(min_interval=0)

    before = time.monotonic()
    for _ in range(5):
        await controller.wait('http://a.com/')
    assert time.monotonic() - before < 0.1
    assert controller.last_request_time('http://a.com/x') is not None


async def test_robots_rules_are_applied(serve):
    site = await serve({}, robots_txt='User-agent: *\nDisallow: /private/\n')

    async with WebFetcher(USER_AGENT, request_timeout=2) as fetcher:
        robots = RobotsCache(fetcher, USER_AGENT)
        assert await robots.can_fetch(site.url('/public/page'))
        assert not await robots.can_fetch(site.url('/private/page'))


async def test_missing_robots_allows_everything(serve):
    site = await serve({})

    async with WebFetcher(USER_AGENT, request_timeout=2) as fetcher:
        robots = RobotsCache(fetcher, USER_AGENT)
        assert await robots.can_fetch(site.url('/anything'))
        assert await robots.get_rules(site.url('/')) is None


async def test_unreachable_host_is_cached_as_allowed():
    async with WebFetcher(USER_AGENT, request_timeout=1) as fetcher:
        robots = RobotsCache(fetcher, USER_AGENT, timeout=1)
        assert await robots.can_fetch('http://127.0.0.1:1/page')
        assert await robots.can_fetch('http://127.0.0.1:1/other')
        assert robots.fetch_count == 1
        assert len(robots) == 1


async def test_robots_fetched_once_per_host_under_concurrency(serve):
    async def slow_robots(request):
        await asyncio.sleep(0.05)
        return web.Response(text='User-agent: *\nDisallow: /admin/\n', content_type='text/plain')

    site = await serve({'/robots.txt': slow_robots})

    async with WebFetcher(USER_AGENT, request_timeout=2) as fetcher:
        robots = RobotsCache(fetcher, USER_AGENT)
        urls = [site.url(f'/page{i}') for i in range(5)] + [site.url('/admin/x')]
        answers = await asyncio.gather(*(robots.can_fetch(url) for url in urls))

        assert answers == [True] * 5 + [False]
        assert robots.fetch_count == 1
        assert site.paths(include_robots=True) == ['/robots.txt']
