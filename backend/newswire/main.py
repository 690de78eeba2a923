"""
FastAPI application hosting the ingestion pipeline.

Runs ingestion cycles on an interval and the expiry sweep daily, and
exposes admin routes for manual triggers and status.
"""
from contextlib import asynccontextmanager

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI

from newswire import __version__
from newswire.api.routes import router, set_pipeline
from newswire.config import get_settings
from newswire.core.logging_config import configure_logging
from newswire.jobs.ingestion_cycle import Pipeline
from newswire.models.database import Database

logger = structlog.get_logger()

# Global instances
database: Database = None
scheduler: AsyncIOScheduler = None
pipeline: Pipeline = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - handles startup and shutdown."""
    global database, scheduler, pipeline

    settings = get_settings()
    configure_logging(settings.log_level, json_output=settings.log_json)

    # Initialize database
    logger.info("Initializing database", url=settings.database_url)
    database = Database(settings.database_url, echo=settings.debug)
    await database.create_tables()

    pipeline = Pipeline(settings, database)
    set_pipeline(pipeline)

    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        run_ingestion_cycle,
        IntervalTrigger(minutes=settings.fetch_interval_minutes),
        id="ingestion_cycle",
        name="Article Ingestion Cycle",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.add_job(
        run_cleanup,
        CronTrigger(hour=settings.cleanup_hour, minute=settings.cleanup_minute, timezone="UTC"),
        id="expired_cleanup",
        name="Expired Article Cleanup",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(
        "Scheduler started",
        fetch_interval_minutes=settings.fetch_interval_minutes,
        cleanup_time=f"{settings.cleanup_hour:02d}:{settings.cleanup_minute:02d} UTC",
    )

    yield

    # Shutdown
    logger.info("Shutting down")
    if scheduler:
        scheduler.shutdown(wait=False)
    set_pipeline(None)
    await pipeline.close()
    await database.dispose()


async def run_ingestion_cycle():
    """Run one scheduled ingestion cycle."""
    try:
        report = await pipeline.cycle.run_cycle()
        logger.info("Scheduled ingestion completed", summary=report.message)
    except Exception as e:
        logger.error("Scheduled ingestion failed", error=str(e), exc_info=True)


async def run_cleanup():
    """Run the scheduled expiry sweep."""
    try:
        deleted = await pipeline.cycle.run_cleanup()
        logger.info("Scheduled cleanup completed", deleted=deleted)
    except Exception as e:
        logger.error("Scheduled cleanup failed", error=str(e), exc_info=True)


app = FastAPI(
    title="Newswire",
    description="News ingestion pipeline: fetch, normalize, dedupe, enrich, persist, expire.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "newswire",
        "version": __version__,
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "newswire.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
