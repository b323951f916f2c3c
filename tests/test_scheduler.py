import asyncio
from collections import Counter

import pytest
from aiohttp import web

from wordcrawler.crawler.records import CrawlResult, ProgressEvent
from wordcrawler.crawler.scheduler import CrawlerScheduler

from .conftest import html_page


def links(*paths):
    return ''.join(f'<a href="{path}">{path}</a>' for path in paths)


async def run_crawl(config, **kwargs) -> CrawlResult:
    async with CrawlerScheduler(config, **kwargs) as scheduler:
        return await scheduler.crawl()


async def test_depth_one_crawl_fetches_seed_and_children(serve, make_config):
    site = await serve({
        '/': html_page('<p>Home page welcome text</p>' + links('/b', '/c', '/d')),
        '/b': html_page('<p>Page bravo content here</p>' + links('/e')),
        '/c': html_page('<p>Page charlie content here</p>'),
        '/d': html_page('<p>Page delta content here</p>'),
        '/e': html_page('<p>Page echo content here</p>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=1))

    by_url = {page.url: page for page in result.pages}
    assert set(by_url) == {site.url(path) for path in ('/', '/b', '/c', '/d')}
    assert by_url[site.url('/')].depth == 0
    assert all(by_url[site.url(path)].depth == 1 for path in ('/b', '/c', '/d'))
    assert '/e' not in site.paths()
    assert result.errors == ()


async def test_depth_zero_fetches_only_the_seed(serve, make_config):
    site = await serve({
        '/': html_page('<p>Lonely seed page text</p>' + links('/a')),
        '/a': html_page('<p>Never fetched page</p>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=0))

    assert [page.url for page in result.pages] == [site.url('/')]
    assert site.paths() == ['/']


async def test_each_url_is_fetched_at_most_once(serve, make_config):
    paths = ['/', '/a', '/b', '/c', '/d', '/e']
    # Every page links to every other page, including itself and fragment variants
    body = links(*paths, '/a#top', '/b?')
    site = await serve({path: html_page(f'<p>Shared words for {path} page</p>' + body)
                        for path in paths})

    result = await run_crawl(make_config(site.url('/'), max_depth=3, concurrency=5))

    urls = [page.url for page in result.pages]
    assert len(urls) == len(set(urls))
    requested = Counter(site.paths())
    assert all(count == 1 for count in requested.values())
    assert {site.url(path) for path in paths} <= set(urls)


async def test_word_frequency_matches_page_counts(serve, make_config):
    site = await serve({
        '/': html_page('<p>Crawler crawler words appear here often</p>' + links('/x', '/y')),
        '/x': html_page('<p>Other words appear in this crawler page</p>'),
        '/y': html_page('<h1>Heading about words and crawler</h1>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=1))

    expected = Counter()
    for page in result.pages:
        expected.update(page.words)
        assert page.total_words == sum(page.words.values())
        assert page.word_count == len(page.words)

    assert dict(result.word_frequency) == dict(expected)
    assert result.total_words == sum(page.total_words for page in result.pages)
    assert result.word_frequency['crawler'] == 4
    assert result.top_words(1)[0][0] == 'crawler'


async def test_robots_disallowed_page_is_skipped_silently(serve, make_config):
    site = await serve({
        '/': html_page('<p>Public landing page text</p>' + links('/private/page', '/public')),
        '/public': html_page('<p>Public page content text</p>'),
        '/private/page': html_page('<p>Secret page content text</p>'),
    }, robots_txt='User-agent: *\nDisallow: /private/\n')

    config = make_config(site.url('/'), max_depth=1)
    async with CrawlerScheduler(config) as scheduler:
        result = await scheduler.crawl()
        assert scheduler.robots.fetch_count == 1

    urls = {page.url for page in result.pages}
    assert site.url('/private/page') not in urls
    assert site.url('/public') in urls
    assert result.errors == ()
    assert '/private/page' not in site.paths()
    assert result.metrics.robots_blocked == 1
    assert site.paths(include_robots=True).count('/robots.txt') == 1


async def test_robots_can_be_ignored(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/private/page')),
        '/private/page': html_page('<p>Secret page content text</p>'),
    }, robots_txt='User-agent: *\nDisallow: /private/\n')

    result = await run_crawl(make_config(site.url('/'), max_depth=1, respect_robots_txt=False))

    assert site.url('/private/page') in {page.url for page in result.pages}
    assert '/robots.txt' not in site.paths(include_robots=True)


async def test_timeout_is_recorded_and_crawl_continues(serve, make_config):
    async def slow(request):
        await asyncio.sleep(1.0)
        return web.Response(text=html_page('<p>Too late</p>'), content_type='text/html')

    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/slow', '/fast')),
        '/slow': slow,
        '/fast': html_page('<p>Fast page content text</p>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=1, request_timeout_ms=200))

    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.url == site.url('/slow')
    assert error.cause == 'timeout'
    assert error.worker_id.startswith('Worker-')
    assert {page.url for page in result.pages} == {site.url('/'), site.url('/fast')}
    assert result.metrics.failed_requests == 1
    assert result.metrics.failures_by_cause == {'timeout': 1}


async def test_http_errors_become_error_records(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/missing')),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=1))

    assert [error.cause for error in result.errors] == ['http_status']
    assert result.errors[0].message == 'HTTP 404'
    assert len(result.pages) == 1


async def test_excluded_extensions_are_never_requested(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>'
                       + links('/doc.pdf', '/img.jpg', '/style.css', '/page')),
        '/doc.pdf': 'pdf',
        '/img.jpg': 'jpg',
        '/style.css': 'css',
        '/page': html_page('<p>Regular page content</p>'),
    })

    await run_crawl(make_config(site.url('/'), max_depth=1))

    assert sorted(site.paths()) == ['/', '/page']


async def test_fan_out_is_bounded(serve, make_config):
    children = [f'/p{i}' for i in range(12)]
    pages = {path: html_page(f'<p>Child page {path} text</p>') for path in children}
    pages['/'] = html_page('<p>Landing page text here</p>' + links(*children))
    site = await serve(pages)

    result = await run_crawl(make_config(site.url('/'), max_depth=1, max_links_per_page=4))

    assert len(result.pages) == 5
    seed = next(page for page in result.pages if page.depth == 0)
    assert seed.link_count == 12


async def test_other_hosts_are_never_followed(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>'
                       + links('http://other.invalid/page', '//cdn.invalid/x', '/local')),
        '/local': html_page('<p>Local page content</p>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=2))

    assert result.errors == ()
    assert len(result.pages) == 2
    assert all(page.url.startswith(site.base) for page in result.pages)


async def test_same_host_requests_respect_delay(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/a', '/b', '/c')),
        '/a': html_page('<p>Alpha page content</p>'),
        '/b': html_page('<p>Bravo page content</p>'),
        '/c': html_page('<p>Charlie page content</p>'),
    })

    await run_crawl(make_config(site.url('/'), max_depth=1, concurrency=4, delay_ms=150))

    times = sorted(site.request_times())
    assert len(times) == 4
    gaps = [later - earlier for earlier, later in zip(times, times[1:])]
    # Server-side arrival times carry a little network jitter
    assert min(gaps) >= 0.15 * 0.8


async def test_progress_callback_receives_running_totals(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/a')),
        '/a': html_page('<p>Alpha page content</p>'),
    })
    events = []

    result = await run_crawl(make_config(site.url('/'), max_depth=1),
                             progress_callback=events.append)

    assert len(events) == 2
    assert all(isinstance(event, ProgressEvent) for event in events)
    assert [event.total_pages for event in events] == [1, 2]
    assert events[-1].total_words == result.total_words
    assert events[0].url == site.url('/')


async def test_metrics_summary(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/a', '/missing')),
        '/a': html_page('<p>Alpha page content</p>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=1, concurrency=2))
    metrics = result.metrics

    assert metrics.request_count == 3
    assert metrics.successful_requests == 2
    assert metrics.failed_requests == 1
    assert metrics.success_rate == pytest.approx(200 / 3)
    assert metrics.pages_crawled == 2
    assert 1 <= metrics.max_concurrency <= 2
    assert metrics.total_execution_time > 0


async def test_single_worker_crawls_breadth_first(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/a', '/b')),
        '/a': html_page('<p>Alpha page content</p>' + links('/a1')),
        '/b': html_page('<p>Bravo page content</p>'),
        '/a1': html_page('<p>Alpha one page content</p>'),
    })

    result = await run_crawl(make_config(site.url('/'), max_depth=2, concurrency=1))

    assert [page.url for page in result.pages] == [
        site.url('/'), site.url('/a'), site.url('/b'), site.url('/a1'),
    ]
    assert {page.processed_by for page in result.pages} == {'Worker-0'}
    assert result.metrics.max_concurrency == 1


async def test_result_bundle_is_read_only(serve, make_config):
    site = await serve({'/': html_page('<p>Landing page text here</p>')})

    result = await run_crawl(make_config(site.url('/'), max_depth=0))

    with pytest.raises(TypeError):
        result.word_frequency['landing'] = 99
    with pytest.raises(AttributeError):
        result.pages[0].title = 'changed'

    data = result.to_dict()
    assert data['metadata']['total_pages'] == 1
    assert data['pages'][0]['url'] == site.url('/')
    assert data['top_words'][0]['word'] in result.word_frequency


async def test_unreachable_seed_finishes_with_one_error(make_config):
    result = await run_crawl(make_config('http://127.0.0.1:1/', max_depth=2))

    assert result.pages == ()
    assert [error.cause for error in result.errors] == ['transport']


async def test_crawl_cannot_run_twice_concurrently(serve, make_config):
    async def slow(request):
        await asyncio.sleep(0.2)
        return web.Response(text=html_page('<p>Slow landing page</p>'), content_type='text/html')

    site = await serve({'/': slow})

    async with CrawlerScheduler(make_config(site.url('/'), max_depth=0)) as scheduler:
        first = asyncio.create_task(scheduler.crawl())
        await asyncio.sleep(0.05)
        with pytest.raises(RuntimeError):
            await scheduler.crawl()
        await first


async def test_links_resolve_against_the_redirected_page(serve, make_config):
    async def to_directory(request):
        raise web.HTTPFound('/docs/')

    site = await serve({
        '/docs': to_directory,
        '/docs/': html_page('<p>Documentation index page</p>' + links('child')),
        '/docs/child': html_page('<p>Child documentation page</p>'),
    })

    result = await run_crawl(make_config(site.url('/docs'), max_depth=1))

    assert result.errors == ()
    assert [page.url for page in result.pages] == [site.url('/docs'), site.url('/docs/child')]
    assert '/child' not in site.paths()


async def test_failing_progress_callback_does_not_fail_the_page(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/a')),
        '/a': html_page('<p>Alpha page content</p>'),
    })

    def broken_callback(progress):
        raise RuntimeError('display went away')

    result = await run_crawl(make_config(site.url('/'), max_depth=1),
                             progress_callback=broken_callback)

    assert result.errors == ()
    assert {page.url for page in result.pages} == {site.url('/'), site.url('/a')}


async def test_get_stats_after_crawl(serve, make_config):
    site = await serve({
        '/': html_page('<p>Landing page text here</p>' + links('/a')),
        '/a': html_page('<p>Alpha page content</p>'),
    })

    async with CrawlerScheduler(make_config(site.url('/'), max_depth=1)) as scheduler:
        await scheduler.crawl()
        stats = scheduler.get_stats()

    assert stats['pages_crawled'] == 2
    assert stats['total_visited'] == 2
    assert stats['total_queued'] == 0
    assert stats['active'] == 0
    assert stats['is_running'] is False
