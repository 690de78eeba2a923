"""
Admin routes for triggering and observing the ingestion pipeline.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from newswire.core.exceptions import (
    ArticleNotFoundError,
    EnrichmentAuthInvalid,
    EnrichmentError,
    EnrichmentRateLimited,
    PersistenceError,
)
from newswire.jobs.ingestion_cycle import Pipeline
from newswire.models.domain import CycleReport, EnrichmentResult, EnrichmentRun
from newswire.services.data_ingestion.rate_limiter import get_rate_limiter

logger = structlog.get_logger(__name__)
router = APIRouter()

_pipeline: Optional[Pipeline] = None


def set_pipeline(pipeline: Optional[Pipeline]):
    """Register the pipeline served by these routes."""
    global _pipeline
    _pipeline = pipeline


def get_pipeline() -> Pipeline:
    """Dependency returning the running pipeline."""
    if _pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline not initialized",
        )
    return _pipeline


PipelineDep = Annotated[Pipeline, Depends(get_pipeline)]


# ============================================================================
# Ingestion Routes
# ============================================================================


@router.post("/admin/cycles", response_model=CycleReport)
async def trigger_cycle(pipeline: PipelineDep):
    """
    Run one ingestion cycle and return its report.

    A trigger arriving while another cycle is running returns a report
    with skipped=true. A persistence failure is reported as HTTP 500.
    """
    report = await pipeline.cycle.run_cycle()
    if not report.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=report.message,
        )
    return report


@router.post("/admin/cleanup")
async def trigger_cleanup(pipeline: PipelineDep):
    """Delete expired articles."""
    try:
        deleted = await pipeline.cycle.run_cleanup()
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )
    return {"deleted": deleted}


# ============================================================================
# Enrichment Routes
# ============================================================================


def _enrichment_status(error: EnrichmentError) -> int:
    if isinstance(error, EnrichmentRateLimited):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, EnrichmentAuthInvalid):
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_502_BAD_GATEWAY


@router.post("/admin/articles/{article_id}/enrich", response_model=EnrichmentResult)
async def enrich_article(article_id: str, pipeline: PipelineDep):
    """
    Enrich one article now.

    Already-enriched articles are returned as stored without calling the
    generative service.
    """
    if pipeline.enricher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrichment is not configured",
        )

    try:
        return await pipeline.enricher.enrich(article_id)
    except ArticleNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except EnrichmentError as e:
        logger.warning("Enrichment request failed", article_id=article_id, error=str(e))
        raise HTTPException(status_code=_enrichment_status(e), detail=str(e))
    except PersistenceError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )


@router.post("/admin/enrichment", response_model=EnrichmentRun, status_code=status.HTTP_202_ACCEPTED)
async def trigger_enrichment(pipeline: PipelineDep):
    """Start a background enrichment run (or return the active one)."""
    if pipeline.dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Enrichment is not configured",
        )
    return pipeline.dispatcher.submit()


@router.get("/admin/enrichment")
async def get_enrichment_status(pipeline: PipelineDep):
    """Status of the active and recent enrichment runs."""
    if pipeline.dispatcher is None:
        return {"enabled": False}
    return {"enabled": True, **pipeline.dispatcher.get_status()}


# ============================================================================
# Status Routes
# ============================================================================


@router.get("/admin/status")
async def get_status(pipeline: PipelineDep):
    """Pipeline state, last cycle report and article count."""
    return {
        "articles": await pipeline.repository.count(),
        "cycle": pipeline.cycle.get_status(),
        "translation_enabled": pipeline.cycle.translator is not None,
        "enrichment_enabled": pipeline.enricher is not None,
        "rate_limits": get_rate_limiter().get_all_status(),
    }
