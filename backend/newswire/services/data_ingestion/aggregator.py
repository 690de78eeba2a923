"""
Source Aggregator - Fetches from every configured source concurrently.

Each source succeeds or fails on its own; failures are captured in the
per-source results and never abort the batch.
"""

import asyncio
import time
from typing import Optional
import logging

from newswire.core.exceptions import MalformedItemError, SourceError
from newswire.services.data_ingestion.base import (
    ArticleDraft,
    BaseSource,
    SourceConfig,
    SourceKind,
    SourceResult,
)
from newswire.services.data_ingestion.normalizer import (
    ARTICLE_TTL_DAYS,
    SUMMARY_MAX_LENGTH,
    normalize,
)

logger = logging.getLogger(__name__)


class SourceAggregator:
    """
    Fans out over configured sources and collects their drafts.

    Features:
    - Concurrent fetching from all enabled sources
    - Per-source timeout so one hung source cannot stall the batch
    - Per-source results with timing and error messages
    """

    def __init__(
        self,
        sources: list[SourceConfig],
        adapters: dict[SourceKind, BaseSource],
        source_timeout: Optional[float] = 60.0,
    ):
        """
        Initialize the aggregator.

        Args:
            sources: Source configurations to fetch
            adapters: Adapter to use for each source kind
            source_timeout: Overall seconds allowed per source (None = no limit)
        """
        self.sources = [s for s in sources if s.enabled]
        self.adapters = adapters
        self.source_timeout = source_timeout

        logger.info(f"Initialized aggregator with {len(self.sources)} sources")

    async def fetch_all(self) -> tuple[list[ArticleDraft], list[SourceResult]]:
        """
        Fetch drafts from all sources concurrently.

        Returns:
            Tuple of (all complete drafts in source order, result per source)
        """
        tasks = [self._fetch_from_source(source) for source in self.sources]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        all_articles: list[ArticleDraft] = []
        source_results: list[SourceResult] = []

        for source, result in zip(self.sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"Source {source.name} failed: {result}")
                source_results.append(SourceResult(
                    source_name=source.name,
                    errors=[self._describe(result)],
                ))
                continue

            articles, source_result = result
            complete = [a for a in articles if a.is_complete()]
            if len(complete) < len(articles):
                logger.debug(
                    f"Dropped {len(articles) - len(complete)} incomplete drafts from {source.name}"
                )
            source_result.articles_fetched = len(complete)
            all_articles.extend(complete)
            source_results.append(source_result)

        logger.info(
            f"Fetched {len(all_articles)} articles from {len(self.sources)} sources"
        )
        return all_articles, source_results

    async def _fetch_from_source(
        self,
        source: SourceConfig,
    ) -> tuple[list[ArticleDraft], SourceResult]:
        """Fetch from a single source with timing."""
        adapter = self.adapters.get(source.kind)
        if adapter is None:
            raise SourceError(source.name, f"No adapter for source kind {source.kind.value}")

        start_time = time.monotonic()
        try:
            articles = await asyncio.wait_for(adapter.fetch(source), timeout=self.source_timeout)
        except asyncio.TimeoutError as e:
            raise SourceError(source.name, f"Timed out after {self.source_timeout}s") from e

        return articles, SourceResult(
            source_name=source.name,
            articles_fetched=len(articles),
            duration_seconds=time.monotonic() - start_time,
        )

    @staticmethod
    def _describe(error: Exception) -> str:
        if isinstance(error, SourceError):
            return error.message
        return f"{type(error).__name__}: {error}"

    def get_source_stats(self) -> dict:
        """Get statistics about configured sources."""
        return {
            "total_sources": len(self.sources),
            "sources": [
                {
                    "name": s.name,
                    "kind": s.kind.value,
                    "endpoint": s.endpoint,
                    "category": s.category,
                    "queries": len(s.queries),
                }
                for s in self.sources
            ],
        }


def normalize_batch(
    drafts: list[ArticleDraft],
    summary_max_length: int = SUMMARY_MAX_LENGTH,
    ttl_days: int = ARTICLE_TTL_DAYS,
) -> list[ArticleDraft]:
    """Normalize every draft, silently dropping malformed items."""
    normalized = []
    for draft in drafts:
        try:
            normalized.append(normalize(draft, summary_max_length, ttl_days))
        except MalformedItemError as e:
            logger.debug(f"Dropped malformed item: {e}")
    return normalized
