"""
Background enrichment of stored articles.

An ingestion cycle ends once its articles are persisted. Enrichment is
handed off to this dispatcher, which runs as its own asyncio task and
exposes its progress through EnrichmentRun status objects.
"""
import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog

from newswire.core.exceptions import (
    ArticleNotFoundError,
    EnrichmentAuthInvalid,
    EnrichmentError,
    EnrichmentRateLimited,
    PersistenceError,
)
from newswire.models.domain import EnrichmentRun, EnrichmentStatus, RunState
from newswire.services.enrichment import Enricher
from newswire.services.persistence import ArticleRepository

logger = structlog.get_logger(__name__)


class EnrichmentDispatcher:
    """
    Picks the newest unenriched articles and enriches them one by one.

    Only one run is active at a time; submitting while a run is active
    returns that run instead of starting another.
    """

    def __init__(
        self,
        enricher: Enricher,
        repository: ArticleRepository,
        batch_size: int = 5,
        delay_seconds: float = 3.0,
        history_size: int = 20,
    ):
        self.enricher = enricher
        self.repository = repository
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.history_size = history_size

        self._task: Optional[asyncio.Task] = None
        self._current: Optional[EnrichmentRun] = None
        self._history: list[EnrichmentRun] = []

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def history(self) -> list[EnrichmentRun]:
        return list(self._history)

    def submit(self) -> EnrichmentRun:
        """Start a background run (or return the one already active)."""
        if self.is_running and self._current is not None:
            logger.debug("Enrichment run already active", run_id=self._current.run_id)
            return self._current

        run = EnrichmentRun(run_id=uuid.uuid4().hex)
        self._current = run
        self._task = asyncio.create_task(self._run_safely(run), name=f"enrichment-{run.run_id}")
        logger.info("Enrichment run queued", run_id=run.run_id)
        return run

    async def wait(self) -> Optional[EnrichmentRun]:
        """Wait for the active run to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self._current

    async def shutdown(self):
        """Cancel the active run, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run_safely(self, run: EnrichmentRun):
        try:
            await self.run_pending(run)
        except asyncio.CancelledError:
            run.state = RunState.FAILED
            run.stopped_reason = "cancelled"
            run.finished_at = datetime.now(timezone.utc)
            raise
        except Exception as e:
            run.state = RunState.FAILED
            run.stopped_reason = str(e)
            run.finished_at = datetime.now(timezone.utc)
            logger.error("Enrichment run failed", run_id=run.run_id, error=str(e), exc_info=True)
        finally:
            self._remember(run)

    async def run_pending(self, run: Optional[EnrichmentRun] = None) -> EnrichmentRun:
        """
        Enrich up to batch_size unenriched articles, sequentially.

        Rate-limit and auth failures stop the run (the remaining calls would
        fail the same way); other failures are recorded and skipped. Failed
        articles stay unenriched and are picked up by a later run.
        """
        run = run or EnrichmentRun(run_id=uuid.uuid4().hex)
        run.state = RunState.RUNNING
        run.started_at = datetime.now(timezone.utc)

        article_ids = await self.repository.list_unenriched(limit=self.batch_size)
        run.requested = len(article_ids)

        if not article_ids:
            logger.info("No articles to enrich", run_id=run.run_id)

        for index, article_id in enumerate(article_ids):
            if index > 0 and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

            try:
                result = await self.enricher.enrich(article_id)
            except (EnrichmentRateLimited, EnrichmentAuthInvalid) as e:
                logger.warning(
                    "Enrichment stopped",
                    run_id=run.run_id,
                    article_id=article_id,
                    reason=type(e).__name__,
                    error=str(e),
                )
                run.failures.append(f"{article_id}: {type(e).__name__}: {e}")
                run.stopped_reason = type(e).__name__
                break
            except (EnrichmentError, ArticleNotFoundError, PersistenceError) as e:
                logger.warning(
                    "Failed to enrich article",
                    run_id=run.run_id,
                    article_id=article_id,
                    error=str(e),
                )
                run.failures.append(f"{article_id}: {type(e).__name__}: {e}")
                continue

            if result.status == EnrichmentStatus.PARSE_DEGRADED:
                run.degraded += 1
            if result.status != EnrichmentStatus.ALREADY_ENRICHED:
                run.enriched += 1

        run.state = RunState.COMPLETED
        run.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Enrichment run complete",
            run_id=run.run_id,
            requested=run.requested,
            enriched=run.enriched,
            degraded=run.degraded,
            failures=len(run.failures),
        )
        return run

    def _remember(self, run: EnrichmentRun):
        self._history.append(run)
        del self._history[:-self.history_size]

    def get_status(self) -> dict:
        return {
            "running": self.is_running,
            "current": self._current.model_dump(mode="json") if self._current else None,
            "recent": [r.model_dump(mode="json") for r in self._history[-5:]],
        }
