# curator/schemas/ingestion.py
"""
Schemas for ingestion admin endpoints.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# -----------------------------------------------------------------------------
# Triggers
# -----------------------------------------------------------------------------


class TriggerSourceResponse(BaseModel):
    """Jobs enqueued for a single source."""

    source_id: uuid.UUID
    job_ids: list[uuid.UUID]


class TriggerAllResponse(BaseModel):
    """Jobs enqueued for every active source."""

    total_jobs: int
    job_ids: list[uuid.UUID]
    failures: dict[str, str] = Field(default_factory=dict, description="source_id -> error message")


# -----------------------------------------------------------------------------
# Stats & logs
# -----------------------------------------------------------------------------


class IngestionStatsResponse(BaseModel):
    """Job counts by queue status."""

    waiting: int
    active: int
    completed: int
    failed: int
    pending: int = Field(..., description="waiting + active")
    total: int
    paused: bool


class IngestionLogEntry(BaseModel):
    """One ingestion job run."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    source_id: uuid.UUID | None
    source_name: str | None
    source_url: str | None
    job_id: uuid.UUID | None
    job_type: str
    status: str
    attempt: int
    articles_found: int
    articles_added: int
    articles_skipped: int
    error_message: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime


class IngestionLogsResponse(BaseModel):
    logs: list[IngestionLogEntry]
    total: int


# -----------------------------------------------------------------------------
# Queue controls
# -----------------------------------------------------------------------------


class QueueControlResponse(BaseModel):
    status: str
    paused: bool


class QueueCleanRequest(BaseModel):
    """Remove terminal jobs older than the given age."""

    age_days: float = Field(7, ge=0, description="Only remove jobs finished more than this many days ago")
    limit: int = Field(1000, ge=1, le=10000, description="Max jobs removed per status")


class QueueCleanResponse(BaseModel):
    completed_removed: int
    failed_removed: int
