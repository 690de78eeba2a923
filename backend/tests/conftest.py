"""Pytest configuration and fixtures."""
from datetime import datetime, timezone

import pytest

from newswire.models.database import Database
from newswire.services.data_ingestion.aggregator import normalize_batch
from newswire.services.data_ingestion.base import ArticleDraft, SourceConfig, SourceKind
from newswire.services.data_ingestion.rate_limiter import RateLimiter
from newswire.services.persistence import ArticleRepository


@pytest.fixture
async def database(tmp_path):
    """File-backed SQLite store, fresh per test."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
async def repository(database):
    return ArticleRepository(database)


@pytest.fixture
def rate_limiter():
    """Rate limiter isolated from the process-wide instance."""
    limiter = RateLimiter()
    limiter.set_spacing("world_news", 0.0)
    return limiter


@pytest.fixture
def rss_config():
    return SourceConfig(
        name="Test Feed",
        kind=SourceKind.RSS_FEED,
        endpoint="https://feeds.example.se/rss.xml",
        category="general",
    )


def make_draft(url: str, title: str = "Rubrik", **overrides) -> ArticleDraft:
    """Build a draft with a fixed publication date."""
    fields = {
        "title": title,
        "source_url": url,
        "source_name": "Test Feed",
        "published_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "summary": f"Sammanfattning av {title}",
    }
    fields.update(overrides)
    return ArticleDraft(**fields)


@pytest.fixture
def sample_drafts():
    """Three normalized drafts."""
    return normalize_batch([
        make_draft("https://example.se/a", "Artikel A"),
        make_draft("https://example.se/b", "Artikel B"),
        make_draft("https://example.se/c", "Artikel C"),
    ])
