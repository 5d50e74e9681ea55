# curator/services/scheduler.py
"""
Ingestion scheduler.

Turns the source registry into queued jobs:
- schedule_due(): periodic pass over sources whose fetch interval elapsed
- trigger_source() / trigger_all(): operator-initiated immediate runs
- run_forever(): the periodic loop around schedule_due()

Scheduling never touches source or article rows; last_fetched_at is only
advanced by the worker once a job actually runs.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from curator.models import JobKind, Source
from curator.services.job_queue import JobQueue
from curator.services.resilience import run_blocking
from curator.services.store import ArticleStore
from curator.utils.clock import to_naive_utc, utcnow

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------


class IngestionConfigError(Exception):
    """A source cannot be ingested as configured. Never retried."""

    pass


class SourceNotFoundError(IngestionConfigError):
    def __init__(self, source_id):
        self.source_id = source_id
        super().__init__(f"Source {source_id} not found")


class SourceInactiveError(IngestionConfigError):
    def __init__(self, source_id):
        self.source_id = source_id
        super().__init__(f"Source {source_id} is not active")


class NoIngestionMethodError(IngestionConfigError):
    def __init__(self, source_id):
        self.source_id = source_id
        super().__init__(f"No ingestion methods configured for source {source_id}")


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass
class ScheduleResult:
    job_ids: list[uuid.UUID] = field(default_factory=list)
    sources_due: int = 0

    @property
    def total_scheduled(self) -> int:
        return len(self.job_ids)


@dataclass
class TriggerAllResult:
    job_ids: list[uuid.UUID] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def total_jobs(self) -> int:
        return len(self.job_ids)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def planned_jobs(source: Source) -> list[tuple[JobKind, str]]:
    """Jobs a source yields, in emission order: feed first, then scrape."""
    jobs = []
    if source.feed_url:
        jobs.append((JobKind.FEED, source.feed_url))
    if source.scrape_enabled and source.url:
        jobs.append((JobKind.SCRAPE, source.url))
    return jobs


def idempotency_key(source: Source, kind: JobKind, now: datetime) -> str:
    """
    Key shared by every job for the same source, kind and fetch window.

    The window is the source's own fetch interval, so at most one job per
    interval can be in flight.
    """
    window_seconds = max(1, source.fetch_frequency_minutes) * 60
    bucket = _epoch_seconds(to_naive_utc(now)) // window_seconds
    return f"{source.id}:{JobKind(kind).value}:{bucket}"


def _epoch_seconds(value: datetime) -> int:
    return int((value - datetime(1970, 1, 1)).total_seconds())


# -----------------------------------------------------------------------------
# Scheduler
# -----------------------------------------------------------------------------


class Scheduler:
    """Enqueues ingestion jobs for due or explicitly triggered sources."""

    def __init__(self, store: ArticleStore, queue: JobQueue, stagger_seconds: float = 1.0):
        self.store = store
        self.queue = queue
        self.stagger_seconds = stagger_seconds

    def schedule_due(self, now: datetime | None = None) -> ScheduleResult:
        """
        Enqueue jobs for every due source.

        The k-th newly created job in the pass (0-based) is delayed by
        k * stagger_seconds. A failure on one source is logged and the pass
        continues with the next.
        """
        now = now or utcnow()
        sources = self.store.list_due_sources(now)
        result = ScheduleResult(sources_due=len(sources))

        for source in sources:
            try:
                for kind, url in planned_jobs(source):
                    delay = len(result.job_ids) * self.stagger_seconds
                    enqueued = self.queue.enqueue(
                        source.id,
                        kind,
                        url,
                        idempotency_key(source, kind, now),
                        delay_seconds=delay,
                        now=now,
                    )
                    if enqueued.created:
                        result.job_ids.append(enqueued.job_id)
            except Exception as e:
                logger.error(
                    f"Failed to schedule source {source.id}: {e}",
                    extra={"event": "schedule_source_failed", "source_id": str(source.id)},
                )

        logger.info(
            f"Scheduled {result.total_scheduled} jobs for {result.sources_due} due sources",
            extra={"event": "schedule_pass", "count": result.total_scheduled},
        )
        return result

    def trigger_source(self, source_id: uuid.UUID, now: datetime | None = None) -> list[uuid.UUID]:
        """
        Enqueue jobs for one source immediately, ignoring its fetch interval.

        Raises:
            SourceNotFoundError, SourceInactiveError, NoIngestionMethodError
        """
        source = self.store.get_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        if not source.is_active:
            raise SourceInactiveError(source_id)

        jobs = planned_jobs(source)
        if not jobs:
            raise NoIngestionMethodError(source_id)

        now = now or utcnow()
        job_ids = []
        for kind, url in jobs:
            enqueued = self.queue.enqueue(source.id, kind, url, idempotency_key(source, kind, now), now=now)
            job_ids.append(enqueued.job_id)

        logger.info(
            f"Triggered {len(job_ids)} jobs for source {source.name}",
            extra={"event": "source_triggered", "source_id": str(source.id), "count": len(job_ids)},
        )
        return job_ids

    def trigger_all(self) -> TriggerAllResult:
        """Trigger every active source, collecting per-source failures."""
        result = TriggerAllResult()
        for source in self.store.list_active_sources():
            try:
                result.job_ids.extend(self.trigger_source(source.id))
            except IngestionConfigError as e:
                logger.warning(
                    f"Skipping source {source.id}: {e}",
                    extra={"event": "trigger_source_skipped", "source_id": str(source.id)},
                )
                result.failures[str(source.id)] = str(e)
            except Exception as e:
                logger.error(
                    f"Failed to trigger source {source.id}: {e}",
                    extra={"event": "trigger_source_failed", "source_id": str(source.id)},
                )
                result.failures[str(source.id)] = str(e)
        return result

    async def run_forever(self, interval_minutes: float = 15, stop_event: asyncio.Event | None = None) -> None:
        """Run schedule_due() now and then every interval until stopped."""
        stop_event = stop_event or asyncio.Event()
        interval_seconds = interval_minutes * 60
        logger.info(
            f"Scheduler started (interval={interval_minutes}m)",
            extra={"event": "scheduler_started"},
        )

        while not stop_event.is_set():
            try:
                await run_blocking(self.schedule_due)
            except Exception:
                logger.exception("Scheduling pass failed")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except TimeoutError:
                pass

        logger.info("Scheduler stopped", extra={"event": "scheduler_stopped"})
