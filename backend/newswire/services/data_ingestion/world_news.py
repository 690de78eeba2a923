"""
World News API adapter for news search results.
API docs: https://worldnewsapi.com/docs/search-news/
"""

from datetime import datetime
from typing import Optional
import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from newswire.core.exceptions import SourceUnavailable
from newswire.services.data_ingestion.base import (
    ArticleDraft,
    BaseSource,
    SourceConfig,
    SourceKind,
)
from newswire.services.data_ingestion.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)

WORLD_NEWS_API_URL = "https://api.worldnewsapi.com/search-news"
SUMMARY_MAX_LENGTH = 300

# Latest news from Swedish outlets, one request per outlet
DEFAULT_QUERIES = [
    {"source-ids": "aftonbladet.se", "number": 15},
    {"source-ids": "expressen.se", "number": 15},
    {"source-ids": "dn.se", "number": 15},
    {"source-ids": "svd.se", "number": 15},
    {"source-ids": "gp.se", "number": 10},
    {"source-ids": "svt.se", "number": 10},
]


def create_world_news_config(
    queries: Optional[list[dict]] = None,
    language: str = "sv",
    country: str = "se",
    endpoint: str = WORLD_NEWS_API_URL,
) -> SourceConfig:
    """Create the default World News API source configuration."""
    return SourceConfig(
        name="World News API",
        kind=SourceKind.SEARCH_API,
        endpoint=endpoint,
        queries=list(queries or DEFAULT_QUERIES),
        language=language,
        country=country,
        max_items=10,
    )


class WorldNewsSource(BaseSource):
    """
    Adapter for the World News API search endpoint.

    Each configured query is one request. Requests to the API are spaced
    by a fixed delay to stay within the quota.
    """

    kind = SourceKind.SEARCH_API
    RATE_LIMIT_KEY = "world_news"

    def __init__(
        self,
        api_key: Optional[str],
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
        request_delay: float = 0.1,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.rate_limiter.set_spacing(self.RATE_LIMIT_KEY, request_delay)

    def _has_api_key(self) -> bool:
        return bool(self.api_key)

    async def fetch(self, config: SourceConfig) -> list[ArticleDraft]:
        """
        Run every configured query against the search endpoint.

        A failing query is logged and skipped. The source only counts as
        unavailable when every query failed.
        """
        if not self._has_api_key():
            raise SourceUnavailable(config.name, "World News API key not configured")

        queries = config.queries or [{}]
        articles: list[ArticleDraft] = []
        failures: list[str] = []

        for query in queries:
            await self.rate_limiter.wait_if_needed(self.RATE_LIMIT_KEY)

            try:
                data = await self._search(config, self._build_params(config, query))
            except SourceUnavailable as e:
                logger.warning(f"World News API error for {query}: {e.message}")
                failures.append(e.message)
                continue

            news = data.get("news") or []
            if not isinstance(news, list):
                news = []
            logger.info(f"Found {len(news)} articles for {query}")

            for item in news:
                if not isinstance(item, dict):
                    continue
                article = self._parse_article(item, config)
                if article:
                    articles.append(article)

        if failures and len(failures) == len(queries):
            raise SourceUnavailable(config.name, "; ".join(failures))

        return articles

    def _build_params(self, config: SourceConfig, query: dict) -> dict:
        params = {
            "number": str(config.max_items),
            "sort-by": "publish-time",
            "sort-direction": "DESC",
        }
        if config.language:
            params["language"] = config.language
        if config.country:
            params["source-countries"] = config.country

        params.update({key: str(value) for key, value in query.items()})
        return params

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _get(self, client: httpx.AsyncClient, url: str, params: dict) -> httpx.Response:
        return await client.get(
            url,
            params=params,
            headers={"x-api-key": self.api_key, "Accept": "application/json"},
            timeout=self.timeout,
        )

    async def _search(self, config: SourceConfig, params: dict) -> dict:
        """Issue one search request."""
        try:
            async with self.http_client() as client:
                response = await self._get(client, config.endpoint, params)
        except httpx.HTTPError as e:
            raise SourceUnavailable(config.name, f"HTTP error: {e!r}") from e

        if not response.is_success:
            raise SourceUnavailable(
                config.name,
                f"HTTP {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SourceUnavailable(config.name, f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise SourceUnavailable(config.name, "Unexpected response shape")
        return data

    def _parse_article(self, item: dict, config: SourceConfig) -> Optional[ArticleDraft]:
        """Parse a World News API item into a draft."""
        title = (item.get("title") or "").strip()
        url = (item.get("url") or "").strip()
        if not title or not url:
            return None

        text = item.get("text") or None
        summary = item.get("summary") or None
        if not summary and text:
            summary = text[:SUMMARY_MAX_LENGTH] + ("..." if len(text) > SUMMARY_MAX_LENGTH else "")

        return ArticleDraft(
            title=title,
            source_url=url,
            source_name=config.name,
            published_at=self._parse_date(item.get("publish_date")),
            category=item.get("category") or config.category,
            image_url=item.get("image") or None,
            summary=summary,
            content=text or summary,
        )

    def _parse_date(self, date_str: Optional[str]) -> Optional[datetime]:
        """Parse "YYYY-MM-DD HH:MM:SS" or ISO 8601 publish dates."""
        if not date_str:
            return None

        try:
            return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        except ValueError:
            return None
