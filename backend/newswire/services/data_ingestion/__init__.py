"""
Data Ingestion Services for the newswire pipeline.

This module provides connectors to fetch articles from news sources:
- RSS feeds and the World News search API
- Rate limiting between requests
- Normalization and deduplication of drafts
"""

from newswire.services.data_ingestion.base import (
    ArticleDraft,
    BaseSource,
    SourceConfig,
    SourceKind,
    SourceResult,
)
from newswire.services.data_ingestion.rate_limiter import RateLimiter
from newswire.services.data_ingestion.rss import RSSSource
from newswire.services.data_ingestion.world_news import WorldNewsSource
from newswire.services.data_ingestion.aggregator import SourceAggregator, normalize_batch
from newswire.services.data_ingestion.normalizer import normalize
from newswire.services.data_ingestion.deduplication import deduplicate

__all__ = [
    "ArticleDraft",
    "BaseSource",
    "SourceConfig",
    "SourceKind",
    "SourceResult",
    "RateLimiter",
    "RSSSource",
    "WorldNewsSource",
    "SourceAggregator",
    "normalize_batch",
    "normalize",
    "deduplicate",
]
