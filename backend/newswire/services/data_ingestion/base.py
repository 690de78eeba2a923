"""
Base classes and data models for data ingestion.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Optional

import httpx


USER_AGENT = "NewsAggregator/1.0"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceKind(str, Enum):
    """Type of content source."""
    RSS_FEED = "rss_feed"
    SEARCH_API = "search_api"


@dataclass
class SourceConfig:
    """Configuration for a data source."""
    name: str
    kind: SourceKind
    endpoint: str
    category: str = "general"
    enabled: bool = True
    max_items: int = 10

    # Search API only: one request per query, e.g. {"text": "riksdagen"}
    # or {"source-ids": "dn.se", "number": 15}
    queries: list[dict] = field(default_factory=list)
    language: Optional[str] = None
    country: Optional[str] = None


@dataclass
class ArticleDraft:
    """
    Article data from a source before persistence.

    This is the intermediate format between source-specific data
    and the stored Article row. `source_url` is the natural key.
    """
    # Required fields
    title: str
    source_url: str

    # Metadata
    source_name: str = ""
    published_at: Optional[datetime] = None
    category: str = "general"
    image_url: Optional[str] = None

    # Content
    summary: Optional[str] = None
    content: Optional[str] = None

    fetched_at: datetime = field(default_factory=utc_now)
    expiry_at: Optional[datetime] = None  # Set by the normalizer

    def is_complete(self) -> bool:
        """A draft needs a title and a source URL to be kept."""
        return bool(self.title and self.title.strip()) and bool(
            self.source_url and self.source_url.strip()
        )


@dataclass
class SourceResult:
    """Result of fetching one source."""
    source_name: str
    articles_fetched: int = 0
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    def __str__(self) -> str:
        status = "✓" if self.success else "✗"
        return (
            f"{status} {self.source_name}: "
            f"fetched={self.articles_fetched}, "
            f"errors={len(self.errors)}, time={self.duration_seconds:.1f}s"
        )


class BaseSource(ABC):
    """
    Abstract base class for source adapters.

    One adapter instance serves every configured source of its kind.
    Each adapter handles:
    - Fetching raw data from the source endpoint
    - Parsing the source-specific format
    - Mapping items to ArticleDraft

    Adapters raise SourceError subclasses; they never write to the store.
    """

    kind: SourceKind

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self._client = client
        self.timeout = timeout

    @abstractmethod
    async def fetch(self, config: SourceConfig) -> list[ArticleDraft]:
        """
        Fetch drafts from one configured source.

        Args:
            config: The source to fetch

        Returns:
            List of ArticleDraft objects (possibly empty)

        Raises:
            SourceUnavailable: On network errors or non-2xx responses
        """
        pass

    @asynccontextmanager
    async def http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a short-lived one when none was given."""
        if self._client is not None:
            yield self._client
            return

        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            yield client
