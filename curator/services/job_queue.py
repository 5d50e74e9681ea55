"""
Durable ingestion job queue.

Jobs live in the ingestion_jobs table, so every worker process shares one
queue and nothing is lost on restart. Delivery is at-least-once:

- enqueue() is a no-op while a job with the same idempotency key is
  waiting or active
- claim_next() moves one due job to active with a conditional UPDATE, so two
  workers can never claim the same row
- fail() re-schedules with exponential backoff until the attempt ceiling,
  then marks the job terminally failed
- recover_stalled() re-delivers active jobs whose lease expired
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from curator.models import IngestionJob, JobKind, JobStatus, QueueState
from curator.utils.clock import utcnow

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Policies
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling and exponential backoff for retryable failures."""

    max_attempts: int = 3
    backoff_base_seconds: float = 2.0

    def backoff_for(self, attempt: int) -> float:
        """Delay before the next delivery after `attempt` failed (1-based)."""
        return self.backoff_base_seconds * (2 ** (attempt - 1))


@dataclass(frozen=True)
class RetentionPolicy:
    """How long terminal jobs are kept."""

    completed_max_age: timedelta = timedelta(hours=24)
    completed_max_count: int = 1000
    failed_max_age: timedelta = timedelta(days=7)


# -----------------------------------------------------------------------------
# Handler outcomes
# -----------------------------------------------------------------------------


# finished_at: when the handler stopped work; recorded as the job's finish time
@dataclass(frozen=True)
class JobSuccess:
    result: dict[str, Any] = field(default_factory=dict)
    finished_at: datetime | None = field(default=None, compare=False)


@dataclass(frozen=True)
class RetryableFailure:
    error: str
    result: dict[str, Any] = field(default_factory=dict)
    finished_at: datetime | None = field(default=None, compare=False)


@dataclass(frozen=True)
class FatalFailure:
    error: str
    result: dict[str, Any] = field(default_factory=dict)
    finished_at: datetime | None = field(default=None, compare=False)


JobOutcome = JobSuccess | RetryableFailure | FatalFailure


@dataclass(frozen=True)
class EnqueueResult:
    job_id: uuid.UUID
    created: bool


# -----------------------------------------------------------------------------
# Queue
# -----------------------------------------------------------------------------


class JobQueue:
    """Database-backed job queue with retry, retention and pause controls."""

    NAME = "news-ingestion"

    def __init__(
        self,
        session_factory: sessionmaker,
        retry_policy: RetryPolicy | None = None,
        retention: RetentionPolicy | None = None,
        lease_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy()
        self.retention = retention or RetentionPolicy()
        self.lease = timedelta(seconds=lease_seconds)

    # -------------------------------------------------------------------------
    # Producing
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        source_id: uuid.UUID,
        kind: JobKind,
        url: str,
        idempotency_key: str,
        delay_seconds: float = 0.0,
        now: datetime | None = None,
    ) -> EnqueueResult:
        """
        Add a job unless one with the same key is still waiting or active.

        Returns:
            EnqueueResult with the new (or already in-flight) job id
        """
        now = now or utcnow()
        with self._session_factory() as db:
            existing_id = self._find_in_flight(db, idempotency_key)
            if existing_id is not None:
                logger.debug(
                    f"Job {idempotency_key} already in flight",
                    extra={"event": "enqueue_noop", "idempotency_key": idempotency_key},
                )
                return EnqueueResult(existing_id, created=False)

            job = IngestionJob(
                id=uuid.uuid4(),
                source_id=source_id,
                kind=JobKind(kind).value,
                url=url,
                idempotency_key=idempotency_key,
                active_key=idempotency_key,
                status=JobStatus.WAITING.value,
                attempts=0,
                max_attempts=self.retry_policy.max_attempts,
                run_at=now + timedelta(seconds=delay_seconds),
                created_at=now,
            )
            db.add(job)
            try:
                db.commit()
            except IntegrityError:
                # Lost a race with another producer for the same key
                db.rollback()
                existing_id = self._find_in_flight(db, idempotency_key)
                if existing_id is None:
                    raise
                return EnqueueResult(existing_id, created=False)

        logger.info(
            f"Enqueued {job.kind} job {job.id} for source {source_id}",
            extra={
                "event": "job_enqueued",
                "job_id": str(job.id),
                "source_id": str(source_id),
                "kind": job.kind,
                "delay_seconds": delay_seconds,
                "idempotency_key": idempotency_key,
            },
        )
        return EnqueueResult(job.id, created=True)

    @staticmethod
    def _find_in_flight(db: Session, idempotency_key: str) -> uuid.UUID | None:
        return db.execute(
            select(IngestionJob.id).where(IngestionJob.active_key == idempotency_key)
        ).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Consuming
    # -------------------------------------------------------------------------

    def claim_next(self, now: datetime | None = None) -> IngestionJob | None:
        """
        Claim the oldest due waiting job.

        Returns None when the queue is paused or nothing is due.
        """
        now = now or utcnow()
        with self._session_factory() as db:
            if self._is_paused(db):
                return None

            candidates = db.execute(
                select(IngestionJob.id)
                .where(IngestionJob.status == JobStatus.WAITING.value, IngestionJob.run_at <= now)
                .order_by(IngestionJob.run_at, IngestionJob.created_at)
                .limit(10)
            ).scalars().all()

            for job_id in candidates:
                claimed = db.execute(
                    update(IngestionJob)
                    .where(IngestionJob.id == job_id, IngestionJob.status == JobStatus.WAITING.value)
                    .values(
                        status=JobStatus.ACTIVE.value,
                        attempts=IngestionJob.attempts + 1,
                        started_at=now,
                        locked_until=now + self.lease,
                    )
                    .execution_options(synchronize_session=False)
                ).rowcount
                if claimed:
                    db.commit()
                    return db.get(IngestionJob, job_id)
            db.rollback()
        return None

    def complete(self, job_id: uuid.UUID, result: dict | None = None, now: datetime | None = None) -> None:
        now = now or utcnow()
        with self._session_factory() as db:
            job = db.get(IngestionJob, job_id)
            if job is None or job.is_terminal:
                return
            job.status = JobStatus.COMPLETED.value
            job.result = result or {}
            job.finished_at = now
            job.locked_until = None
            job.active_key = None
            db.commit()

    def fail(
        self,
        job_id: uuid.UUID,
        error: str,
        retryable: bool = True,
        result: dict | None = None,
        now: datetime | None = None,
    ) -> str | None:
        """
        Record a failed attempt.

        Retryable failures below the attempt ceiling go back to waiting with
        exponential backoff; everything else becomes terminally failed.

        Returns:
            The job's new status, or None if the job no longer exists
        """
        now = now or utcnow()
        with self._session_factory() as db:
            job = db.get(IngestionJob, job_id)
            if job is None:
                return None
            if job.is_terminal:
                return job.status
            self._record_failure(job, error, retryable, now)
            if result:
                job.result = result
            db.commit()
            return job.status

    def _record_failure(self, job: IngestionJob, error: str, retryable: bool, now: datetime) -> None:
        job.last_error = error
        job.locked_until = None

        if retryable and job.attempts < job.max_attempts:
            delay = self.retry_policy.backoff_for(job.attempts)
            job.status = JobStatus.WAITING.value
            job.run_at = now + timedelta(seconds=delay)
            logger.warning(
                f"Job {job.id} attempt {job.attempts}/{job.max_attempts} failed: {error}. "
                f"Retrying in {delay:.1f}s",
                extra={
                    "event": "job_retry_scheduled",
                    "job_id": str(job.id),
                    "attempt": job.attempts,
                    "delay_seconds": delay,
                },
            )
            return

        job.status = JobStatus.FAILED.value
        job.finished_at = now
        job.active_key = None
        logger.error(
            f"Job {job.id} failed permanently after {job.attempts} attempt(s): {error}",
            extra={"event": "job_failed", "job_id": str(job.id), "attempt": job.attempts},
        )

    def recover_stalled(self, now: datetime | None = None) -> int:
        """
        Re-deliver active jobs whose lease expired (worker died mid-job).

        The lost run counts as a failed attempt.
        """
        now = now or utcnow()
        with self._session_factory() as db:
            stalled = db.execute(
                select(IngestionJob).where(
                    IngestionJob.status == JobStatus.ACTIVE.value,
                    IngestionJob.locked_until < now,
                )
            ).scalars().all()
            for job in stalled:
                self._record_failure(job, "Job stalled (lease expired)", retryable=True, now=now)
            if stalled:
                db.commit()
                logger.warning(
                    f"Recovered {len(stalled)} stalled jobs",
                    extra={"event": "stalled_jobs_recovered", "count": len(stalled)},
                )
        return len(stalled)

    # -------------------------------------------------------------------------
    # Retention
    # -------------------------------------------------------------------------

    def prune(self, now: datetime | None = None) -> int:
        """Apply the retention policy to terminal jobs. Returns rows removed."""
        now = now or utcnow()
        removed = 0
        with self._session_factory() as db:
            removed += db.execute(
                delete(IngestionJob).where(
                    IngestionJob.status == JobStatus.COMPLETED.value,
                    IngestionJob.finished_at < now - self.retention.completed_max_age,
                )
            ).rowcount

            overflow_ids = db.execute(
                select(IngestionJob.id)
                .where(IngestionJob.status == JobStatus.COMPLETED.value)
                .order_by(IngestionJob.finished_at.desc())
                .offset(self.retention.completed_max_count)
            ).scalars().all()
            if overflow_ids:
                removed += db.execute(
                    delete(IngestionJob).where(IngestionJob.id.in_(overflow_ids))
                ).rowcount

            removed += db.execute(
                delete(IngestionJob).where(
                    IngestionJob.status == JobStatus.FAILED.value,
                    IngestionJob.finished_at < now - self.retention.failed_max_age,
                )
            ).rowcount
            db.commit()

        if removed:
            logger.info(f"Pruned {removed} terminal jobs", extra={"event": "jobs_pruned", "count": removed})
        return removed

    def clean(
        self,
        grace_seconds: float,
        limit: int = 1000,
        status: JobStatus = JobStatus.COMPLETED,
        now: datetime | None = None,
    ) -> int:
        """Delete up to `limit` terminal jobs in `status` finished more than `grace_seconds` ago."""
        status = JobStatus(status)
        if status not in (JobStatus.COMPLETED, JobStatus.FAILED):
            raise ValueError(f"Only terminal jobs can be cleaned, got {status.value}")

        cutoff = (now or utcnow()) - timedelta(seconds=grace_seconds)
        with self._session_factory() as db:
            ids = db.execute(
                select(IngestionJob.id)
                .where(IngestionJob.status == status.value, IngestionJob.finished_at < cutoff)
                .order_by(IngestionJob.finished_at)
                .limit(limit)
            ).scalars().all()
            if not ids:
                return 0
            removed = db.execute(delete(IngestionJob).where(IngestionJob.id.in_(ids))).rowcount
            db.commit()

        logger.info(
            f"Cleaned {removed} {status.value} jobs",
            extra={"event": "jobs_cleaned", "status": status.value, "count": removed},
        )
        return removed

    # -------------------------------------------------------------------------
    # Controls & stats
    # -------------------------------------------------------------------------

    def pause(self) -> None:
        self._set_paused(True)
        logger.info("Queue paused", extra={"event": "queue_paused"})

    def resume(self) -> None:
        self._set_paused(False)
        logger.info("Queue resumed", extra={"event": "queue_resumed"})

    def is_paused(self) -> bool:
        with self._session_factory() as db:
            return self._is_paused(db)

    def _is_paused(self, db: Session) -> bool:
        state = db.get(QueueState, self.NAME)
        return bool(state and state.paused)

    def _set_paused(self, paused: bool) -> None:
        with self._session_factory() as db:
            state = db.get(QueueState, self.NAME)
            if state is None:
                db.add(QueueState(name=self.NAME, paused=paused))
            else:
                state.paused = paused
            db.commit()

    def get(self, job_id: uuid.UUID) -> IngestionJob | None:
        with self._session_factory() as db:
            return db.get(IngestionJob, job_id)

    def counts(self) -> dict[str, int]:
        """Number of jobs in each status."""
        counts = {status.value: 0 for status in JobStatus}
        with self._session_factory() as db:
            rows = db.execute(
                select(IngestionJob.status, func.count()).group_by(IngestionJob.status)
            ).all()
        for status, count in rows:
            counts[status] = count
        return counts
