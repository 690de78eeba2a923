"""
Ingestion cycle for the article store.

One cycle:
1. Fetches drafts from every configured source concurrently
2. Normalizes them (markup, summary cap, expiry, defaults)
3. Deduplicates on source URL (last one wins)
4. Translates them, when a translator is configured
5. Upserts them into the store
6. Hands enrichment off to the background dispatcher

Only a persistence failure fails a cycle. Source and item failures are
recorded in the report and the cycle carries on with what it has.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import structlog

from newswire.config import IngestionConfig, Settings
from newswire.core.exceptions import PersistenceError
from newswire.jobs.enrichment_job import EnrichmentDispatcher
from newswire.models.database import Database
from newswire.models.domain import CycleReport, CycleState, SourceFailure
from newswire.services.data_ingestion.aggregator import SourceAggregator, normalize_batch
from newswire.services.data_ingestion.base import BaseSource, SourceKind
from newswire.services.data_ingestion.deduplication import deduplicate
from newswire.services.data_ingestion.rss import RSSSource
from newswire.services.data_ingestion.world_news import WorldNewsSource
from newswire.services.enrichment import Enricher, create_generative_client
from newswire.services.persistence import ArticleRepository
from newswire.services.translation import DeepLTranslator

logger = structlog.get_logger(__name__)


def create_adapters(
    config: IngestionConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[SourceKind, BaseSource]:
    """One adapter per source kind, sharing the HTTP client when given."""
    return {
        SourceKind.RSS_FEED: RSSSource(client=client, timeout=config.http_timeout_seconds),
        SourceKind.SEARCH_API: WorldNewsSource(
            api_key=config.world_news_api_key,
            client=client,
            timeout=config.http_timeout_seconds,
            request_delay=config.request_delay_seconds,
        ),
    }


class IngestionCycle:
    """
    Orchestrates fetch, normalize, dedupe, translate, persist and enrich.

    Re-entrancy: a cycle triggered while another is in flight is skipped
    and reported with skipped=True.
    """

    def __init__(
        self,
        config: IngestionConfig,
        repository: ArticleRepository,
        adapters: Optional[dict[SourceKind, BaseSource]] = None,
        translator: Optional[DeepLTranslator] = None,
        dispatcher: Optional[EnrichmentDispatcher] = None,
    ):
        self.config = config
        self.repository = repository
        self.adapters = adapters or create_adapters(config)
        self.translator = translator
        self.dispatcher = dispatcher
        self.aggregator = SourceAggregator(
            config.sources,
            self.adapters,
            source_timeout=config.source_timeout_seconds,
        )

        self.state = CycleState.IDLE
        self._running = False
        self.last_report: Optional[CycleReport] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def run_cycle(self) -> CycleReport:
        """Run one ingestion cycle and report what happened."""
        report = CycleReport()

        if self._running:
            logger.warning("Ingestion cycle already running, skipping trigger")
            report.skipped = True
            report.finished_at = datetime.now(timezone.utc)
            return report

        self._running = True
        logger.info("Starting ingestion cycle", sources=len(self.aggregator.sources))

        try:
            await self._run_stages(report)
        finally:
            self._running = False
            self.state = CycleState.IDLE
            report.finished_at = datetime.now(timezone.utc)
            self.last_report = report

        elapsed = (report.finished_at - report.started_at).total_seconds()
        log = logger.info if report.success else logger.error
        log(
            "Ingestion cycle finished",
            success=report.success,
            fetched=report.fetched,
            deduped=report.deduped,
            written=report.written,
            source_errors=len(report.errors),
            elapsed_seconds=round(elapsed, 2),
        )
        return report

    async def _run_stages(self, report: CycleReport):
        # Stage 1: Fetch
        self.state = CycleState.FETCHING
        drafts, results = await self.aggregator.fetch_all()
        report.fetched = len(drafts)
        for result in results:
            logger.info("Source fetched", result=str(result))
            for error in result.errors:
                report.errors.append(SourceFailure(source=result.source_name, error=error))

        # Stage 2: Normalize
        self.state = CycleState.NORMALIZING
        drafts = normalize_batch(
            drafts,
            summary_max_length=self.config.summary_max_length,
            ttl_days=self.config.article_ttl_days,
        )

        # Stage 3: Deduplicate
        self.state = CycleState.DEDUPING
        drafts = deduplicate(drafts)
        report.deduped = len(drafts)
        logger.info("Articles deduplicated", fetched=report.fetched, unique=report.deduped)

        if not drafts:
            logger.info("No new articles to save")
            return

        # Stage 4: Translate
        if self.translator is not None:
            self.state = CycleState.TRANSLATING
            translated = await self.translator.translate_drafts(drafts)
            drafts = normalize_batch(
                translated,
                summary_max_length=self.config.summary_max_length,
                ttl_days=self.config.article_ttl_days,
            )
            report.translated = len(drafts)

        # Stage 5: Persist
        self.state = CycleState.PERSISTING
        try:
            report.written = await self.repository.upsert(drafts)
        except PersistenceError as e:
            report.success = False
            report.error = str(e)
            return

        # Stage 6: Hand off enrichment
        if self.dispatcher is not None and report.written:
            self.state = CycleState.ENRICHING
            run = self.dispatcher.submit()
            report.enrichment_run_id = run.run_id

    async def run_cleanup(self, now: Optional[datetime] = None) -> int:
        """
        Delete expired articles.

        Runs on its own schedule, independent of ingestion cycles.

        Returns:
            Number of articles deleted
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=self.config.cleanup_grace_days)
        deleted = await self.repository.delete_expired(cutoff)
        logger.info("Expired articles cleaned up", deleted=deleted)
        return deleted

    def get_status(self) -> dict:
        return {
            "state": self.state.value,
            "running": self._running,
            "last_report": self.last_report.model_dump(mode="json") if self.last_report else None,
            "sources": self.aggregator.get_source_stats(),
        }


class Pipeline:
    """Wires the store, the ingestion cycle and the enrichment services together."""

    def __init__(self, settings: Settings, database: Database):
        self.settings = settings
        self.database = database
        self.config = IngestionConfig.from_settings(settings)
        self.repository = ArticleRepository(database)

        self.http_client = httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
        )

        generative_client = create_generative_client(settings, self.http_client)
        self.enricher: Optional[Enricher] = (
            Enricher(self.repository, generative_client) if generative_client else None
        )
        self.dispatcher: Optional[EnrichmentDispatcher] = (
            EnrichmentDispatcher(
                self.enricher,
                self.repository,
                batch_size=self.config.enrichment_batch_size,
                delay_seconds=self.config.enrichment_delay_seconds,
            )
            if self.enricher
            else None
        )

        translator = None
        if settings.translation_enabled:
            translator = DeepLTranslator(
                api_key=settings.deepl_api_key,
                api_url=settings.deepl_api_url,
                target_language=settings.translation_target_language,
                client=self.http_client,
                timeout=settings.http_timeout_seconds,
                batch_size=settings.translation_batch_size,
                batch_delay=settings.translation_batch_delay_seconds,
            )

        self.cycle = IngestionCycle(
            self.config,
            self.repository,
            adapters=create_adapters(self.config, self.http_client),
            translator=translator,
            dispatcher=self.dispatcher,
        )

        logger.info(
            "Pipeline initialized",
            sources=[s.name for s in self.config.sources],
            translation=translator is not None,
            enrichment=self.enricher is not None,
        )

    async def close(self):
        if self.dispatcher is not None:
            await self.dispatcher.shutdown()
        await self.http_client.aclose()

