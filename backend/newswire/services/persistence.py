"""
Article persistence gateway.

Writes go through insert-on-conflict upserts keyed on source_url so that
concurrent cycles are safe without any in-process locking. Only the
fetched columns are ever overwritten: engagement counters belong to the
reactions subsystem, and enrichment columns are written exactly once.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from newswire.core.exceptions import ArticleNotFoundError, PersistenceError
from newswire.models.database import Database, DBArticle
from newswire.models.domain import Article, EnrichmentResult
from newswire.services.data_ingestion.base import ArticleDraft
from newswire.services.data_ingestion.deduplication import deduplicate
from newswire.services.data_ingestion.normalizer import as_utc

logger = structlog.get_logger(__name__)

# Columns owned by the fetch pipeline
FETCHED_COLUMNS = (
    "title",
    "source_name",
    "published_at",
    "expiry_at",
    "category",
    "image_url",
    "summary",
    "content",
)

# Rows per INSERT statement; all chunks share one transaction
UPSERT_CHUNK_SIZE = 500


class ArticleRepository:
    """Keyed article store on top of an async SQLAlchemy engine."""

    def __init__(self, database: Database):
        self.database = database
        self._insert = self._insert_for(database.dialect_name)

    @staticmethod
    def _insert_for(dialect_name: str):
        if dialect_name == "postgresql":
            return postgresql.insert
        if dialect_name == "sqlite":
            return sqlite.insert
        raise PersistenceError(f"Upsert is not supported on dialect {dialect_name!r}")

    async def upsert(self, drafts: list[ArticleDraft]) -> int:
        """
        Insert new articles and refresh existing ones, keyed on source_url.

        The whole batch is written in one transaction: either every row is
        written or none is.

        Args:
            drafts: Normalized drafts (expiry_at must be set)

        Returns:
            Number of rows written

        Raises:
            PersistenceError: If the store rejects the batch
        """
        unique = deduplicate(drafts)
        if not unique:
            return 0

        now = datetime.now(timezone.utc)
        rows = [self._to_row(draft, now) for draft in unique]

        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    for start in range(0, len(rows), UPSERT_CHUNK_SIZE):
                        stmt = self._insert(DBArticle).values(rows[start:start + UPSERT_CHUNK_SIZE])
                        stmt = stmt.on_conflict_do_update(
                            index_elements=[DBArticle.source_url],
                            set_={
                                **{column: stmt.excluded[column] for column in FETCHED_COLUMNS},
                                "updated_at": stmt.excluded.updated_at,
                            },
                        )
                        await session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("Article upsert failed", rows=len(rows), error=str(e))
            raise PersistenceError(f"Upsert of {len(rows)} articles failed: {e}") from e

        logger.info("Articles upserted", rows=len(rows))
        return len(rows)

    @staticmethod
    def _to_row(draft: ArticleDraft, now: datetime) -> dict:
        if draft.published_at is None or draft.expiry_at is None:
            raise PersistenceError(f"Draft is not normalized: {draft.source_url}")

        return {
            "id": str(uuid.uuid4()),
            "source_url": draft.source_url,
            "title": draft.title,
            "source_name": draft.source_name,
            "published_at": draft.published_at,
            "expiry_at": draft.expiry_at,
            "category": draft.category,
            "image_url": draft.image_url,
            "summary": draft.summary,
            "content": draft.content,
            "created_at": now,
            "updated_at": now,
        }

    async def delete_expired(self, cutoff: Optional[datetime] = None) -> int:
        """
        Delete every article whose expiry is at or before the cutoff.

        Returns:
            Number of rows deleted
        """
        cutoff = as_utc(cutoff or datetime.now(timezone.utc))

        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(DBArticle).where(DBArticle.expiry_at <= cutoff)
                    )
        except SQLAlchemyError as e:
            logger.error("Expired article cleanup failed", error=str(e))
            raise PersistenceError(f"Deleting expired articles failed: {e}") from e

        deleted = result.rowcount or 0
        logger.info("Expired articles deleted", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    async def get(self, article_id: str) -> Optional[Article]:
        async with self.database.async_session() as session:
            db_article = await session.get(DBArticle, article_id)
            return Article.model_validate(db_article) if db_article else None

    async def get_by_url(self, source_url: str) -> Optional[Article]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBArticle).where(DBArticle.source_url == source_url)
            )
            db_article = result.scalar_one_or_none()
            return Article.model_validate(db_article) if db_article else None

    async def count(self) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(select(func.count(DBArticle.id)))
            return result.scalar() or 0

    async def count_unenriched(self) -> int:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(func.count(DBArticle.id)).where(DBArticle.ai_enriched_at.is_(None))
            )
            return result.scalar() or 0

    async def list_unenriched(self, limit: int = 5) -> list[str]:
        """IDs of the newest articles without enrichment."""
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBArticle.id)
                .where(DBArticle.ai_enriched_at.is_(None))
                .order_by(DBArticle.published_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def save_enrichment(self, result: EnrichmentResult) -> bool:
        """
        Store an enrichment unless the article already has one.

        Returns:
            True if written, False if the article was enriched meanwhile

        Raises:
            ArticleNotFoundError: If the article no longer exists
            PersistenceError: If the store rejects the write
        """
        try:
            async with self.database.async_session() as session:
                async with session.begin():
                    update_result = await session.execute(
                        update(DBArticle)
                        .where(
                            DBArticle.id == result.article_id,
                            DBArticle.ai_enriched_at.is_(None),
                        )
                        .values(
                            ai_summary=result.summary,
                            ai_context=result.context,
                            ai_timeline=result.timeline,
                            ai_analysis=result.analysis,
                            ai_what_we_know=result.what_we_know,
                            ai_enriched_at=result.enriched_at or datetime.now(timezone.utc),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if update_result.rowcount:
                        return True

                    exists = await session.get(DBArticle, result.article_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Saving enrichment for {result.article_id} failed: {e}") from e

        if exists is None:
            raise ArticleNotFoundError(result.article_id)
        return False
