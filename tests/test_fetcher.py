"""
Tests for the proxy-based content fetcher.
"""

from unittest.mock import AsyncMock, call, patch

import httpx
import pytest

from content_analyzer.fetcher import ContentFetcher, FetchError, ProxyStrategy, looks_like_html
from tests.conftest import VALID_HTML, make_async_client, make_response

TEMPLATES = [
    "https://proxy-one.test/raw?url={url}",
    "https://proxy-two.test/?{url}",
    "https://proxy-three.test/proxy?quest={url}",
]
TARGET_URL = "https://example.com/article?id=7"


def make_fetcher(sleep, **kwargs):
    strategies = [ProxyStrategy(t, failure_threshold=0) for t in TEMPLATES]
    return ContentFetcher(strategies=strategies, max_retries=3, retry_delay=1.0, sleep=sleep, **kwargs)


@pytest.mark.asyncio
async def test_fetch_returns_first_valid_response(no_sleep):
    get = AsyncMock(side_effect=[make_response(500, "Server error"), make_response(200, VALID_HTML)])
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        html = await make_fetcher(no_sleep).fetch(TARGET_URL)

    assert html == VALID_HTML
    assert get.await_count == 2
    second_url = get.await_args_list[1].args[0]
    assert second_url == "https://proxy-two.test/?https%3A%2F%2Fexample.com%2Farticle%3Fid%3D7"
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_fetch_exhausts_every_endpoint_in_every_round(no_sleep):
    get = AsyncMock(return_value=make_response(200, "<html><body>too short</body></html>"))
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        with pytest.raises(FetchError):
            await make_fetcher(no_sleep).fetch(TARGET_URL)

    assert get.await_count == 9
    # Linear backoff between rounds, none after the last round
    assert no_sleep.await_args_list == [call(1.0), call(2.0)]


@pytest.mark.asyncio
async def test_fetch_treats_network_errors_as_failed_attempts(no_sleep):
    get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        with pytest.raises(FetchError) as exc_info:
            await make_fetcher(no_sleep).fetch(TARGET_URL)

    assert get.await_count == 9
    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


@pytest.mark.asyncio
async def test_fetch_recovers_in_a_later_round(no_sleep):
    failures = [httpx.ReadTimeout("timeout")] * 3
    get = AsyncMock(side_effect=failures + [make_response(200, VALID_HTML)])
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        html = await make_fetcher(no_sleep).fetch(TARGET_URL)

    assert html == VALID_HTML
    assert get.await_count == 4
    assert no_sleep.await_args_list == [call(1.0)]


@pytest.mark.asyncio
async def test_fetch_rejects_empty_url(no_sleep):
    with pytest.raises(ValueError):
        await make_fetcher(no_sleep).fetch("")


def test_direct_template_returns_url_unchanged():
    assert ProxyStrategy("{url}").build_url(TARGET_URL) == TARGET_URL


def test_template_without_placeholder_is_rejected():
    with pytest.raises(ValueError):
        ProxyStrategy("https://proxy.test/")


def test_circuit_opens_after_threshold_and_recovers_after_cooldown():
    now = [100.0]
    strategy = ProxyStrategy(TEMPLATES[0], failure_threshold=2, cooldown=60.0, clock=lambda: now[0])

    strategy.record_failure()
    assert strategy.is_available()
    strategy.record_failure()
    assert not strategy.is_available()

    now[0] += 61.0
    assert strategy.is_available()
    strategy.record_success()
    assert strategy.consecutive_failures == 0
    assert strategy.opened_at is None


@pytest.mark.asyncio
async def test_open_circuits_are_skipped(no_sleep):
    strategies = [ProxyStrategy(t, failure_threshold=1, cooldown=600.0) for t in TEMPLATES]
    strategies[0].record_failure()
    get = AsyncMock(return_value=make_response(200, VALID_HTML))
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        await ContentFetcher(strategies=strategies, sleep=no_sleep).fetch(TARGET_URL)

    assert get.await_args.args[0].startswith("https://proxy-two.test/")


def test_looks_like_html():
    assert looks_like_html(VALID_HTML)
    assert looks_like_html("<HTML>" + "x" * 600 + "</BODY>")
    assert not looks_like_html("x" * 600)
    assert not looks_like_html("<html></html>")
    assert not looks_like_html("")


@pytest.mark.asyncio
async def test_missing_pages_do_not_open_circuits(no_sleep):
    strategies = [ProxyStrategy(t, failure_threshold=2, cooldown=600.0) for t in TEMPLATES]
    fetcher = ContentFetcher(strategies=strategies, max_retries=3, retry_delay=1.0, sleep=no_sleep)
    get = AsyncMock(return_value=make_response(404, "Not found"))
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        for url in ("https://gone.test/a", "https://gone.test/b"):
            with pytest.raises(FetchError):
                await fetcher.fetch(url)

        get.return_value = make_response(200, VALID_HTML)
        get.reset_mock()
        html = await fetcher.fetch(TARGET_URL)

    assert html == VALID_HTML
    assert get.await_count == 1
    assert all(s.is_available() for s in strategies)


@pytest.mark.asyncio
async def test_server_errors_count_toward_the_circuit(no_sleep):
    strategy = ProxyStrategy(TEMPLATES[0], failure_threshold=2, cooldown=600.0)
    get = AsyncMock(return_value=make_response(502, "Bad gateway"))
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        with pytest.raises(FetchError):
            await ContentFetcher(strategies=[strategy], max_retries=2, sleep=no_sleep).fetch(TARGET_URL)

    assert strategy.consecutive_failures == 2
    assert not strategy.is_available()


@pytest.mark.asyncio
async def test_fetch_still_attempts_when_every_circuit_is_open(no_sleep):
    strategies = [ProxyStrategy(t, failure_threshold=1, cooldown=600.0) for t in TEMPLATES]
    fetcher = ContentFetcher(strategies=strategies, max_retries=1, sleep=no_sleep)
    get = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
    mock_client = make_async_client(get=get)

    with patch('httpx.AsyncClient', return_value=mock_client):
        with pytest.raises(FetchError):
            await fetcher.fetch(TARGET_URL)
        assert not any(s.is_available() for s in strategies)

        get.side_effect = None
        get.return_value = make_response(200, VALID_HTML)
        html = await fetcher.fetch(TARGET_URL)

    assert html == VALID_HTML
    assert strategies[0].is_available()
