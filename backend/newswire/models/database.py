"""
SQLAlchemy database models for the article store.
Uses SQLAlchemy 2.0 async patterns.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.ext.asyncio import AsyncAttrs, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# =============================================================================
# Base
# =============================================================================

class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


# =============================================================================
# Articles
# =============================================================================

class DBArticle(Base):
    """Stored article. source_url is the natural key shared by all sources."""
    __tablename__ = "articles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)

    # Fetched fields (overwritten on every upsert)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    source_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expiry_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="general")
    image_url: Mapped[Optional[str]] = mapped_column(Text)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    content: Mapped[Optional[str]] = mapped_column(Text)

    # AI enrichment (written once by the enricher)
    ai_summary: Mapped[Optional[str]] = mapped_column(Text)
    ai_context: Mapped[Optional[str]] = mapped_column(Text)
    ai_timeline: Mapped[Optional[str]] = mapped_column(Text)
    ai_analysis: Mapped[Optional[str]] = mapped_column(Text)
    ai_what_we_know: Mapped[Optional[str]] = mapped_column(Text)
    ai_enriched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Engagement counters (owned by the reactions subsystem)
    likes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    dislikes_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    comments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Indexes
    __table_args__ = (
        Index("ux_articles_source_url", "source_url", unique=True),
        Index("ix_articles_expiry_at", "expiry_at"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_ai_enriched_at", "ai_enriched_at"),
    )


# =============================================================================
# Database Connection
# =============================================================================

class Database:
    """Database connection manager."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = create_async_engine(
            database_url,
            echo=echo,  # Set to True for SQL logging
        )
        self.async_session = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    async def create_tables(self):
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()
