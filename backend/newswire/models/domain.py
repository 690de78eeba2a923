"""
Domain models for the ingestion pipeline.
These are the business entities, independent of database/API representation.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class EnrichmentStatus(str, Enum):
    """Outcome of a single enrichment call."""
    ENRICHED = "enriched"
    ALREADY_ENRICHED = "already_enriched"
    PARSE_DEGRADED = "parse_degraded"  # Raw text stored as summary


class CycleState(str, Enum):
    """Stages of one ingestion cycle."""
    IDLE = "idle"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    DEDUPING = "deduping"
    TRANSLATING = "translating"
    PERSISTING = "persisting"
    ENRICHING = "enriching"


class RunState(str, Enum):
    """State of a background enrichment run."""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# Articles
# =============================================================================

class Article(BaseModel):
    """A stored article, keyed by source_url."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    source_url: str
    title: str
    source_name: str
    published_at: datetime
    expiry_at: datetime
    category: str = "general"
    image_url: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None

    # Enrichment (written once)
    ai_summary: Optional[str] = None
    ai_context: Optional[str] = None
    ai_timeline: Optional[str] = None
    ai_analysis: Optional[str] = None
    ai_what_we_know: Optional[str] = None
    ai_enriched_at: Optional[datetime] = None

    # Engagement (owned by the reactions subsystem)
    likes_count: int = 0
    dislikes_count: int = 0
    comments_count: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_enriched(self) -> bool:
        return self.ai_enriched_at is not None


class EnrichmentResult(BaseModel):
    """Structured commentary produced for one article."""
    article_id: str
    status: EnrichmentStatus
    summary: Optional[str] = None
    context: Optional[str] = None
    timeline: Optional[str] = None
    analysis: Optional[str] = None
    what_we_know: Optional[str] = None
    enriched_at: Optional[datetime] = None

    @classmethod
    def from_article(cls, article: Article) -> "EnrichmentResult":
        return cls(
            article_id=article.id,
            status=EnrichmentStatus.ALREADY_ENRICHED,
            summary=article.ai_summary,
            context=article.ai_context,
            timeline=article.ai_timeline,
            analysis=article.ai_analysis,
            what_we_know=article.ai_what_we_know,
            enriched_at=article.ai_enriched_at,
        )


# =============================================================================
# Reports
# =============================================================================

class SourceFailure(BaseModel):
    """One failed source in a cycle."""
    source: str
    error: str


class CycleReport(BaseModel):
    """Summary of one ingestion cycle."""
    fetched: int = 0  # Complete drafts from all sources
    deduped: int = 0  # Unique drafts after normalization and dedupe
    written: int = 0  # Rows upserted
    translated: int = 0
    errors: list[SourceFailure] = Field(default_factory=list)

    success: bool = True
    skipped: bool = False  # Another cycle was in flight
    error: Optional[str] = None  # Terminal (persistence) error
    enrichment_run_id: Optional[str] = None

    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    @computed_field
    @property
    def message(self) -> str:
        if self.skipped:
            return "Skipped: an ingestion cycle is already running"
        if not self.success:
            return f"Ingestion failed after fetching {self.fetched} articles: {self.error}"
        text = (
            f"Fetched {self.fetched} articles, {self.deduped} unique, "
            f"saved {self.written}"
        )
        if self.errors:
            text += f" ({len(self.errors)} source(s) failed)"
        return text


class EnrichmentRun(BaseModel):
    """Status of one background enrichment run."""
    run_id: str
    state: RunState = RunState.QUEUED
    requested: int = 0
    enriched: int = 0
    degraded: int = 0
    failures: list[str] = Field(default_factory=list)
    stopped_reason: Optional[str] = None
    queued_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
