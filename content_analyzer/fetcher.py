"""
Resilient HTML retrieval through an ordered list of fetch-through proxies.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx

from content_analyzer import config

logger = logging.getLogger(__name__)

MIN_HTML_BYTES = 500
HTML_CLOSING_TAGS = ('</html>', '</body>')


class FetchError(Exception):
    """Raised when every fetch endpoint failed in every retry round."""
    pass


class ProxyStrategy:
    """
    One retrieval endpoint with its own circuit-breaker state.

    The template embeds the percent-encoded target URL through a ``{url}``
    placeholder; a bare ``{url}`` template fetches the page directly.
    Only transport failures (timeouts, connection errors, 5xx from the proxy)
    count toward the breaker; an answered request for a missing or invalid page
    says nothing about proxy health. After ``failure_threshold`` consecutive
    transport failures the endpoint is skipped until ``cooldown`` seconds have
    passed. A threshold of 0 disables the breaker.
    """

    def __init__(
        self,
        template: str,
        name: Optional[str] = None,
        failure_threshold: int = config.FETCH_FAILURE_THRESHOLD,
        cooldown: float = config.FETCH_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        if '{url}' not in template:
            raise ValueError(f"Proxy template must contain '{{url}}': {template}")
        self.template = template
        self.name = name or template.split('?')[0]
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None

    def build_url(self, url: str) -> str:
        if self.template.strip() == '{url}':
            return url
        return self.template.format(url=quote(url, safe=''))

    def is_available(self) -> bool:
        if self.opened_at is None:
            return True
        # Half-open: let one attempt through once the cooldown has passed
        return self._clock() - self.opened_at >= self.cooldown

    def record_success(self):
        self.consecutive_failures = 0
        self.opened_at = None

    def record_failure(self):
        self.consecutive_failures += 1
        if self.failure_threshold > 0 and self.consecutive_failures >= self.failure_threshold:
            if self.opened_at is None:
                logger.warning(f"Opening circuit for proxy {self.name} after {self.consecutive_failures} failures")
            self.opened_at = self._clock()

    def __repr__(self) -> str:
        return f"ProxyStrategy({self.name!r}, failures={self.consecutive_failures})"


def looks_like_html(body: str) -> bool:
    """A response body counts as a page only if it is large enough and closes its document."""
    if not body or len(body.encode('utf-8')) <= MIN_HTML_BYTES:
        return False
    lowered = body.lower()
    return any(tag in lowered for tag in HTML_CLOSING_TAGS)


class ContentFetcher:
    """
    Fetches HTML through fallback endpoints with bounded retry rounds.

    Every round tries all available endpoints in order; between rounds the
    fetcher waits ``round_index * retry_delay`` seconds. Exactly one request is
    in flight at a time.
    """

    def __init__(
        self,
        strategies: Optional[List[ProxyStrategy]] = None,
        max_retries: int = config.FETCH_MAX_RETRIES,
        retry_delay: float = config.FETCH_RETRY_DELAY,
        timeout: float = config.FETCH_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.strategies = strategies if strategies is not None else [
            ProxyStrategy(template) for template in config.FETCH_PROXY_TEMPLATES
        ]
        if not self.strategies:
            raise ValueError("At least one fetch strategy is required")
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep
        self.headers: Dict[str, str] = {
            'User-Agent': config.USER_AGENT,
            'Accept-Language': 'en-US,en;q=0.9',
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        }

    def _round_strategies(self) -> List[ProxyStrategy]:
        available = [s for s in self.strategies if s.is_available()]
        if not available:
            # Every circuit is open: treat them all as half-open
            logger.info("All proxy circuits open, trying every proxy")
            return list(self.strategies)
        return available

    async def fetch(self, url: str) -> str:
        """
        Fetch the HTML of ``url``.

        Returns:
            The raw HTML of the first response that passes validation.

        Raises:
            ValueError: If url is empty.
            FetchError: After every endpoint failed in every round.
        """
        if not url:
            raise ValueError("URL cannot be empty")

        last_error: Optional[Exception] = None
        attempts = 0

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            for round_index in range(1, self.max_retries + 1):
                for strategy in self._round_strategies():
                    attempts += 1
                    try:
                        response = await client.get(strategy.build_url(url), headers=self.headers)
                    except httpx.TimeoutException as e:
                        last_error = e
                        strategy.record_failure()
                        logger.warning(f"Proxy {strategy.name} timed out for {url}")
                        continue
                    except httpx.HTTPError as e:
                        last_error = e
                        strategy.record_failure()
                        logger.warning(f"Proxy {strategy.name} failed for {url}: {e}")
                        continue

                    if response.status_code >= 500:
                        strategy.record_failure()
                        logger.warning(f"Proxy {strategy.name} returned status {response.status_code} for {url}")
                        continue

                    # The proxy answered; whatever is wrong from here on is the page's fault
                    strategy.record_success()
                    if not 200 <= response.status_code < 300:
                        logger.warning(f"Proxy {strategy.name} returned status {response.status_code} for {url}")
                        continue

                    html = response.text
                    if not looks_like_html(html):
                        logger.warning(f"Proxy {strategy.name} returned invalid content length: {len(html or '')}")
                        continue

                    logger.info(f"Fetched {url} via {strategy.name} ({len(html)} chars, round {round_index})")
                    return html

                if round_index < self.max_retries:
                    delay = round_index * self.retry_delay
                    logger.info(f"Retry round {round_index} for {url} failed, waiting {delay:.1f}s")
                    await self._sleep(delay)

        logger.error(f"Failed to fetch {url} after {attempts} attempts")
        raise FetchError(f"Failed to fetch {url} after {attempts} attempts") from last_error
