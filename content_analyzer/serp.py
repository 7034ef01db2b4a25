"""
SERP retrieval (DataForSEO) and keyword difficulty scoring.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
import pydantic

from content_analyzer import config
from content_analyzer.extractor import domain_of
from content_analyzer.models import SerpResultRow
from content_analyzer.utils import clamp, round_half_up

logger = logging.getLogger(__name__)

MAX_SERP_RESULTS = 10

DOMAIN_AUTHORITY_WEIGHT = 0.4
CONTENT_QUALITY_WEIGHT = 0.3
COMPETITION_WEIGHT = 0.3
POSITION_WEIGHT_TOTAL = 55  # 10 + 9 + ... + 1

OPTIMAL_TITLE_LENGTH = (50, 60)
OPTIMAL_DESCRIPTION_LENGTH = (120, 160)
STRONG_DOMAIN_ETV = 1000


class SerpApiError(Exception):
    """Custom exception for SERP API related errors."""
    pass


def get_nested(data: Any, path: List[Any], default: Any = None) -> Any:
    """Safely retrieves nested dictionary keys or list indexes."""
    current = data
    for key in path:
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and isinstance(key, int) and -len(current) <= key < len(current):
            current = current[key]
        else:
            return default
        if current is None:
            return default
    return current


class SerpDifficultyScorer:
    """
    Estimates keyword difficulty (0-100) from the top organic results.

    The score mixes three factors:
    - domain authority: backlink counts weighted by rank position
    - content quality: share of results with optimally sized title and description
    - competition: paid traffic and estimated traffic value of ranking domains
    """

    def score(self, rows: Sequence[SerpResultRow]) -> int:
        if not rows:
            return 0

        domain_authority = self.domain_authority(rows)
        content_quality = self.content_quality(rows)
        competition = self.competition(rows)

        weighted = (
            domain_authority * DOMAIN_AUTHORITY_WEIGHT
            + content_quality * CONTENT_QUALITY_WEIGHT
            + competition * COMPETITION_WEIGHT
        )
        result = clamp(round_half_up(weighted * 100), 0, 100)
        logger.debug(
            f"Difficulty factors: authority={domain_authority:.3f}, quality={content_quality:.3f}, "
            f"competition={competition:.3f}, score={result}"
        )
        return result

    @staticmethod
    def domain_authority(rows: Sequence[SerpResultRow]) -> float:
        total = 0.0
        for index, row in enumerate(rows):
            position_weight = max(10 - index, 0)
            link_score = min((row.links_count or 0) / 1000, 1)
            total += link_score * position_weight / POSITION_WEIGHT_TOTAL
        return total

    @staticmethod
    def content_quality(rows: Sequence[SerpResultRow]) -> float:
        def is_optimal(row: SerpResultRow) -> bool:
            title_length = len(row.title or '')
            description_length = len(row.description or '')
            return (
                OPTIMAL_TITLE_LENGTH[0] <= title_length <= OPTIMAL_TITLE_LENGTH[1]
                and OPTIMAL_DESCRIPTION_LENGTH[0] <= description_length <= OPTIMAL_DESCRIPTION_LENGTH[1]
            )
        return sum(1.0 if is_optimal(row) else 0.5 for row in rows) / len(rows)

    @staticmethod
    def competition(rows: Sequence[SerpResultRow]) -> float:
        total = 0.0
        for row in rows:
            if (row.estimated_paid_traffic_cost or 0) > 0:
                total += 0.5
            if (row.etv or 0) > STRONG_DOMAIN_ETV:
                total += 0.5
        return total / len(rows)


class DataForSeoClient:
    """Fetches live organic Google results from the DataForSEO SERP API."""

    def __init__(
        self,
        login: Optional[str] = config.DATAFORSEO_LOGIN,
        password: Optional[str] = config.DATAFORSEO_PASSWORD,
        api_url: str = config.DATAFORSEO_API_URL,
        language_code: str = config.DATAFORSEO_LANGUAGE_CODE,
        timeout: float = 30.0
    ):
        self.login = login
        self.password = password
        self.api_url = api_url
        self.language_code = language_code
        self.timeout = timeout

    def _build_payload(self, keyword: str, location_code: int) -> List[Dict[str, Any]]:
        return [{
            "keyword": keyword,
            "location_code": int(location_code),
            "language_code": self.language_code,
            "device": "desktop",
            "os": "windows",
            "depth": MAX_SERP_RESULTS
        }]

    async def fetch_serp(
        self,
        keyword: str,
        location_code: Optional[int] = None,
        request_id: str = 'N/A'
    ) -> List[SerpResultRow]:
        """
        Fetch the top organic results for a keyword.

        Args:
            keyword: The search keyword/phrase
            location_code: DataForSEO location code, defaults to config
            request_id: Request ID for logging

        Returns:
            At most 10 organic results in rank order

        Raises:
            ValueError: If the keyword is empty or credentials are missing
            SerpApiError: If there's an error with the API request
        """
        if not keyword:
            raise ValueError("Keyword cannot be empty")
        if not self.login or not self.password:
            raise ValueError("DATAFORSEO_LOGIN and DATAFORSEO_PASSWORD environment variables are not set")

        location_code = location_code or config.DATAFORSEO_LOCATION_CODE
        logger.info(f"[{request_id}] Fetching SERP for '{keyword}' (location {location_code})")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.api_url,
                    json=self._build_payload(keyword, location_code),
                    auth=(self.login, self.password)
                )
                response.raise_for_status()
                data = response.json()

            if not isinstance(data, dict):
                raise SerpApiError("Invalid response format from SERP API")

            items = get_nested(data, ['tasks', 0, 'result', 0, 'items'], [])
            if not items:
                logger.warning(f"[{request_id}] No items found in SERP response")
                return []

            results = []
            for item in items:
                if item.get('type') != 'organic':
                    continue
                try:
                    results.append(self._to_row(item))
                except pydantic.ValidationError as model_err:
                    logger.warning(f"[{request_id}] Skipping SERP item {item.get('url')}: {model_err}")
                if len(results) >= MAX_SERP_RESULTS:
                    break

            logger.info(f"[{request_id}] Successfully fetched {len(results)} SERP results")
            return results

        except SerpApiError:
            raise

        except httpx.HTTPStatusError as e:
            logger.error(f"[{request_id}] HTTP error {e.response.status_code} fetching SERP: {e}")
            if e.response.status_code == 401:
                raise SerpApiError("Invalid SERP API credentials") from e
            elif e.response.status_code == 429:
                raise SerpApiError("SERP API rate limit exceeded") from e
            else:
                raise SerpApiError(f"HTTP error {e.response.status_code} fetching SERP results") from e

        except httpx.TimeoutException as e:
            logger.error(f"[{request_id}] Timeout error fetching SERP results: {e}")
            raise SerpApiError("SERP API request timed out") from e

        except httpx.RequestError as e:
            logger.error(f"[{request_id}] Network error fetching SERP results: {e}")
            raise SerpApiError(f"Network error: {str(e)}") from e

        except ValueError as e:
            logger.error(f"[{request_id}] Invalid JSON from SERP API: {e}")
            raise SerpApiError("Invalid JSON response from SERP API") from e

        except Exception as e:
            logger.error(f"[{request_id}] Unexpected error fetching SERP results: {e}", exc_info=True)
            raise SerpApiError(f"Unexpected error: {str(e)}") from e

    @staticmethod
    def _to_row(item: Dict[str, Any]) -> SerpResultRow:
        url = item.get('url')
        return SerpResultRow(
            url=url,
            title=item.get('title') or '',
            description=item.get('description') or '',
            position=item.get('rank_position'),
            domain=item.get('domain') or domain_of(url),
            links_count=item.get('links_count') or 0,
            estimated_paid_traffic_cost=item.get('estimated_paid_traffic_cost') or 0,
            etv=item.get('etv') or 0
        )
