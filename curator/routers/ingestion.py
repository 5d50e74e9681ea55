# curator/routers/ingestion.py
"""
Ingestion admin endpoints.

POST /v1/sources/{source_id}/ingest   - Enqueue jobs for one source
POST /v1/sources/ingest-all           - Enqueue jobs for every active source
GET  /v1/ingestion/stats              - Job counts by status
GET  /v1/ingestion/logs               - Recent ingestion log entries
POST /v1/ingestion/queue/pause        - Stop job delivery
POST /v1/ingestion/queue/resume       - Resume job delivery
POST /v1/ingestion/queue/clean        - Remove aged terminal jobs
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from curator.auth import require_admin_key
from curator.models import JobStatus
from curator.pipeline import IngestionPipeline
from curator.schemas.ingestion import (
    IngestionLogEntry,
    IngestionLogsResponse,
    IngestionStatsResponse,
    QueueCleanRequest,
    QueueCleanResponse,
    QueueControlResponse,
    TriggerAllResponse,
    TriggerSourceResponse,
)
from curator.services.scheduler import (
    IngestionConfigError,
    NoIngestionMethodError,
    SourceInactiveError,
    SourceNotFoundError,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ingestion"])

_pipeline: IngestionPipeline | None = None


def get_pipeline() -> IngestionPipeline:
    """FastAPI dependency returning the process-wide pipeline."""
    global _pipeline
    if _pipeline is None:
        from curator.config import get_settings
        from curator.database import get_session_factory
        from curator.pipeline import build_pipeline

        _pipeline = build_pipeline(get_session_factory(), get_settings())
    return _pipeline


def _config_error_status(error: IngestionConfigError) -> int:
    if isinstance(error, SourceNotFoundError):
        return 404
    if isinstance(error, SourceInactiveError):
        return 409
    if isinstance(error, NoIngestionMethodError):
        return 422
    return 400


# -----------------------------------------------------------------------------
# Triggers
# -----------------------------------------------------------------------------


@router.post("/v1/sources/ingest-all", response_model=TriggerAllResponse)
def trigger_all_sources(
    _: None = Depends(require_admin_key),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> TriggerAllResponse:
    """Enqueue ingestion for every active source."""
    result = pipeline.scheduler.trigger_all()
    return TriggerAllResponse(
        total_jobs=result.total_jobs,
        job_ids=result.job_ids,
        failures=result.failures,
    )


@router.post("/v1/sources/{source_id}/ingest", response_model=TriggerSourceResponse)
def trigger_source(
    source_id: uuid.UUID,
    _: None = Depends(require_admin_key),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> TriggerSourceResponse:
    """Enqueue ingestion for one source, ignoring its fetch interval."""
    try:
        job_ids = pipeline.scheduler.trigger_source(source_id)
    except IngestionConfigError as e:
        raise HTTPException(status_code=_config_error_status(e), detail=str(e))

    return TriggerSourceResponse(source_id=source_id, job_ids=job_ids)


# -----------------------------------------------------------------------------
# Stats & logs
# -----------------------------------------------------------------------------


@router.get("/v1/ingestion/stats", response_model=IngestionStatsResponse)
def get_ingestion_stats(
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestionStatsResponse:
    return IngestionStatsResponse(**pipeline.stats.get_stats().as_dict())


@router.get("/v1/ingestion/logs", response_model=IngestionLogsResponse)
def get_ingestion_logs(
    limit: int = Query(50, ge=1, le=500, description="Max entries to return"),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestionLogsResponse:
    """Most recent ingestion log entries, newest first."""
    logs = [IngestionLogEntry(**entry) for entry in pipeline.stats.recent_logs(limit=limit)]
    return IngestionLogsResponse(logs=logs, total=len(logs))


# -----------------------------------------------------------------------------
# Queue controls
# -----------------------------------------------------------------------------


@router.post("/v1/ingestion/queue/pause", response_model=QueueControlResponse)
def pause_queue(
    _: None = Depends(require_admin_key),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> QueueControlResponse:
    pipeline.queue.pause()
    return QueueControlResponse(status="paused", paused=True)


@router.post("/v1/ingestion/queue/resume", response_model=QueueControlResponse)
def resume_queue(
    _: None = Depends(require_admin_key),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> QueueControlResponse:
    pipeline.queue.resume()
    return QueueControlResponse(status="resumed", paused=False)


@router.post("/v1/ingestion/queue/clean", response_model=QueueCleanResponse)
def clean_queue(
    request: QueueCleanRequest | None = None,
    _: None = Depends(require_admin_key),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> QueueCleanResponse:
    """Remove completed and failed jobs older than `age_days`."""
    request = request or QueueCleanRequest()
    grace_seconds = request.age_days * 86400
    completed = pipeline.queue.clean(grace_seconds, limit=request.limit, status=JobStatus.COMPLETED)
    failed = pipeline.queue.clean(grace_seconds, limit=request.limit, status=JobStatus.FAILED)
    logger.info(f"Queue clean removed {completed} completed and {failed} failed jobs")
    return QueueCleanResponse(completed_removed=completed, failed_removed=failed)
