# curator/models.py
"""
Ingestion pipeline database models

Tables:
- Source: configured news origins (feed and/or scrape), with fetch cadence
- Article: ingested articles, unique by content fingerprint
- IngestionJob: durable job queue rows (one per source + method + window)
- IngestionLog: audit trail for each job run
- QueueState: durable pause flag shared by every worker
"""

from enum import Enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from curator.database import Base
from curator.utils.clock import utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class JobKind(str, Enum):
    """Ingestion method for a job."""
    FEED = "feed"
    SCRAPE = "scrape"


class JobStatus(str, Enum):
    """Queue lifecycle of a job."""
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


class LogStatus(str, Enum):
    """Ingestion log entry status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ArticleCategory(str, Enum):
    """Coarse article categories assigned at ingestion time."""
    POLITICS = "politics"
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    SCIENCE = "science"
    HEALTH = "health"
    ENTERTAINMENT = "entertainment"
    SPORTS = "sports"
    WORLD = "world"
    OTHER = "other"


# -----------------------------------------------------------------------------
# Source
# -----------------------------------------------------------------------------

class Source(Base):
    """Configured news origin with its own fetch cadence."""
    __tablename__ = "sources"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    url = Column(String(500), unique=True, nullable=False)
    feed_url = Column(String(500), nullable=True)
    scrape_enabled = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    fetch_frequency_minutes = Column(Integer, default=60, nullable=False)
    last_fetched_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    articles = relationship("Article", back_populates="source")

    __table_args__ = (
        Index("ix_sources_is_active", "is_active"),
        Index("ix_sources_last_fetched_at", "last_fetched_at"),
    )

    @property
    def has_ingestion_method(self) -> bool:
        return bool(self.feed_url) or bool(self.scrape_enabled and self.url)


# -----------------------------------------------------------------------------
# Article
# -----------------------------------------------------------------------------

class Article(Base):
    """
    Ingested article. Append-only from the pipeline's point of view.

    Dedupe keys:
    - fingerprint: unique, the final authority under concurrent workers
    - url: indexed, cheaper first-pass duplicate signal
    """
    __tablename__ = "articles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(500), nullable=False)
    url = Column(String(1000), nullable=False)
    body = Column(Text, nullable=False)
    author = Column(String(255), nullable=True)
    published_at = Column(DateTime, nullable=False)
    category = Column(String(32), default=ArticleCategory.OTHER.value, nullable=False)
    image_url = Column(String(1000), nullable=True)
    fingerprint = Column(String(64), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    source = relationship("Source", back_populates="articles")

    __table_args__ = (
        Index("ix_articles_url", "url"),
        Index("ix_articles_source_id", "source_id"),
        Index("ix_articles_published_at", "published_at"),
        Index("ix_articles_category", "category"),
    )


# -----------------------------------------------------------------------------
# IngestionJob (durable queue)
# -----------------------------------------------------------------------------

class IngestionJob(Base):
    """
    One unit of ingestion work for one source and one method.

    active_key mirrors idempotency_key while the job is waiting/active and is
    cleared on reaching a terminal state, so the unique constraint only
    rejects duplicate *in-flight* work for the same source + kind + window.
    """
    __tablename__ = "ingestion_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=False)
    kind = Column(String(16), nullable=False)  # JobKind
    url = Column(String(1000), nullable=False)
    idempotency_key = Column(String(128), nullable=False)
    active_key = Column(String(128), unique=True, nullable=True)

    status = Column(String(16), default=JobStatus.WAITING.value, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
    max_attempts = Column(Integer, default=3, nullable=False)
    run_at = Column(DateTime, default=utcnow, nullable=False)
    locked_until = Column(DateTime, nullable=True)

    last_error = Column(Text, nullable=True)
    result = Column(JSONType, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_ingestion_jobs_status_run_at", "status", "run_at"),
        Index("ix_ingestion_jobs_idempotency_key", "idempotency_key"),
        Index("ix_ingestion_jobs_finished_at", "finished_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


# -----------------------------------------------------------------------------
# IngestionLog
# -----------------------------------------------------------------------------

class IngestionLog(Base):
    """Audit trail for ingestion job runs. Never read by the pipeline itself."""
    __tablename__ = "ingestion_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    source_id = Column(Uuid, ForeignKey("sources.id", ondelete="CASCADE"), nullable=True)
    job_id = Column(Uuid, nullable=True)
    job_type = Column(String(16), nullable=False)  # JobKind
    status = Column(String(16), nullable=False)  # LogStatus
    attempt = Column(Integer, default=1, nullable=False)

    articles_found = Column(Integer, default=0, nullable=False)
    articles_added = Column(Integer, default=0, nullable=False)
    articles_skipped = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    source = relationship("Source")

    __table_args__ = (
        Index("ix_ingestion_logs_source_id", "source_id"),
        Index("ix_ingestion_logs_status", "status"),
        Index("ix_ingestion_logs_created_at", created_at.desc()),
    )


# -----------------------------------------------------------------------------
# QueueState
# -----------------------------------------------------------------------------

class QueueState(Base):
    """Durable queue controls (pause flag), one row per named queue."""
    __tablename__ = "queue_state"

    name = Column(String(64), primary_key=True)
    paused = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
