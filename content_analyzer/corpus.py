"""
Builds the content corpus for an analysis: our page plus the competitor pages.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from content_analyzer import config
from content_analyzer.extractor import HtmlExtractor, domain_of
from content_analyzer.fetcher import ContentFetcher, FetchError
from content_analyzer.models import OUR_DOMAIN, ContentAnalysis, PageContent, SerpResultRow

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]
CompetitorInput = Union[str, Tuple[str, str], SerpResultRow]


def _competitor_target(item: CompetitorInput) -> Tuple[Optional[str], str]:
    """Normalize a competitor given as URL, (domain, url) pair or SERP row."""
    if isinstance(item, SerpResultRow):
        return domain_of(item.url) or item.domain, item.url
    if isinstance(item, tuple):
        domain, url = item
        return domain or domain_of(url), url
    return domain_of(item), item


class CorpusBuilder:
    """
    Fetches and extracts our page and each competitor, one request at a time.

    Competitor failures are logged and skipped; a competitor whose page yields
    no words and no headers is left out of the corpus.
    """

    def __init__(
        self,
        fetcher: Optional[ContentFetcher] = None,
        extractor: Optional[HtmlExtractor] = None,
        competitor_delay: float = config.COMPETITOR_FETCH_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.fetcher = fetcher or ContentFetcher()
        self.extractor = extractor or HtmlExtractor()
        self.competitor_delay = competitor_delay
        self._sleep = sleep

    async def parse_url(self, url: str, domain: Optional[str] = None) -> PageContent:
        """Fetch and extract one page. Raises FetchError when the page cannot be retrieved."""
        html = await self.fetcher.fetch(url)
        return self.extractor.extract(html, url=url, domain=domain)

    async def build(
        self,
        our_url: Optional[str],
        competitors: Sequence[CompetitorInput],
        on_progress: Optional[ProgressCallback] = None,
        request_id: str = 'N/A'
    ) -> ContentAnalysis:
        """
        Build the corpus.

        Args:
            our_url: Our page URL, or None to analyze competitors only
            competitors: Competitor URLs, (domain, url) pairs or SERP rows, in rank order
            on_progress: Optional callback receiving status messages
            request_id: Request ID for logging

        Returns:
            ContentAnalysis with every competitor that produced content selected
        """
        def report(message: str):
            logger.info(f"[{request_id}] {message}")
            if on_progress:
                on_progress(message)

        report("Starting content analysis...")
        our_domain = PageContent(url=our_url, domain=domain_of(our_url))

        if our_url:
            report(f"Analyzing our content at {our_url}...")
            try:
                our_domain = await self.parse_url(our_url)
            except FetchError as e:
                logger.error(f"[{request_id}] Could not fetch our URL {our_url}: {e}")
            except Exception as e:
                logger.error(f"[{request_id}] Error parsing our URL {our_url}: {e}", exc_info=True)

        kept: List[PageContent] = []
        for index, item in enumerate(competitors):
            domain, url = _competitor_target(item)
            if index > 0 and self.competitor_delay > 0:
                await self._sleep(self.competitor_delay)

            report(f"Analyzing competitor {index + 1} of {len(competitors)}: {domain}...")
            try:
                content = await self.parse_url(url, domain=domain)
            except Exception as e:
                logger.error(f"[{request_id}] Error analyzing competitor {url}: {str(e)}")
                continue

            if content.is_empty():
                logger.warning(f"[{request_id}] Competitor {url} produced no content, skipping")
                continue
            kept.append(content)

        corpus = ContentAnalysis(
            our_domain=our_domain,
            competitors=kept,
            selected_domains={OUR_DOMAIN, *(c.domain for c in kept if c.domain)}
        )
        report(f"Content analysis completed! {len(kept)} of {len(competitors)} competitors kept.")
        return corpus
