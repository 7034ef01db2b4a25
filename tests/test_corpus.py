"""
Tests for corpus building over our page and competitor pages.
"""

from unittest.mock import AsyncMock, MagicMock, call

import pytest

from content_analyzer.corpus import CorpusBuilder
from content_analyzer.extractor import HtmlExtractor
from content_analyzer.fetcher import ContentFetcher, FetchError
from content_analyzer.models import SerpResultRow
from tests.conftest import VALID_HTML

EMPTY_HTML = "<html><body><div></div></body></html>"


def make_fetcher(pages):
    """Fetcher mock returning HTML per URL, raising when the mapped value is an exception."""
    async def fetch(url):
        page = pages[url]
        if isinstance(page, Exception):
            raise page
        return page

    fetcher = MagicMock(spec=ContentFetcher)
    fetcher.fetch = AsyncMock(side_effect=fetch)
    return fetcher


@pytest.mark.asyncio
async def test_build_skips_failed_and_empty_competitors(no_sleep):
    fetcher = make_fetcher({
        "https://our.com/page": VALID_HTML,
        "https://www.alpha.com/1": VALID_HTML,
        "https://beta.com/2": FetchError("all proxies failed"),
        "https://gamma.com/3": EMPTY_HTML,
    })
    builder = CorpusBuilder(fetcher=fetcher, extractor=HtmlExtractor(), competitor_delay=2.0, sleep=no_sleep)
    messages = []

    corpus = await builder.build(
        "https://our.com/page",
        ["https://www.alpha.com/1", "https://beta.com/2", "https://gamma.com/3"],
        on_progress=messages.append
    )

    assert corpus.our_domain.domain == "our.com"
    assert corpus.our_domain.headers["h1"] == ["Valid Page Heading"]
    assert [c.domain for c in corpus.competitors] == ["alpha.com"]
    assert corpus.selected_domains == {"our", "alpha.com"}
    # Fixed delay before every competitor except the first
    assert no_sleep.await_args_list == [call(2.0), call(2.0)]
    assert messages[0] == "Starting content analysis..."
    assert messages[-1].startswith("Content analysis completed!")


@pytest.mark.asyncio
async def test_build_survives_failure_on_our_page(no_sleep):
    fetcher = make_fetcher({
        "https://our.com/page": FetchError("unreachable"),
        "https://alpha.com/1": VALID_HTML,
    })
    builder = CorpusBuilder(fetcher=fetcher, sleep=no_sleep)

    corpus = await builder.build("https://our.com/page", ["https://alpha.com/1"])

    assert corpus.our_domain.url == "https://our.com/page"
    assert corpus.our_domain.is_empty()
    assert len(corpus.competitors) == 1


@pytest.mark.asyncio
async def test_build_without_our_url_accepts_serp_rows(no_sleep):
    fetcher = make_fetcher({"https://alpha.com/1": VALID_HTML, "https://beta.com/2": VALID_HTML})
    builder = CorpusBuilder(fetcher=fetcher, sleep=no_sleep)
    rows = [
        SerpResultRow(url="https://alpha.com/1", position=1, domain="alpha.com"),
        SerpResultRow(url="https://beta.com/2", position=2, domain="beta.com"),
    ]

    corpus = await builder.build(None, rows)

    assert corpus.our_domain.is_empty()
    assert [c.domain for c in corpus.competitors] == ["alpha.com", "beta.com"]
    assert corpus.selected_domains == {"our", "alpha.com", "beta.com"}
    assert fetcher.fetch.await_count == 2


@pytest.mark.asyncio
async def test_parse_url_propagates_fetch_errors(no_sleep):
    fetcher = make_fetcher({"https://alpha.com/1": FetchError("down")})
    builder = CorpusBuilder(fetcher=fetcher, sleep=no_sleep)

    with pytest.raises(FetchError):
        await builder.parse_url("https://alpha.com/1")
