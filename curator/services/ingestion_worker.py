# curator/services/ingestion_worker.py
"""
Ingestion worker: runs one job end to end.

For each job:
1. Open an audit log entry (pending -> processing)
2. Run the extractor for the job kind
3. Fingerprint each draft, skip duplicates, persist the rest
4. Advance the source's last_fetched_at, success or failure
5. Finalize the log entry with counts and the error, if any

The returned outcome tells the dispatcher whether the queue should retry.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.exc import InterfaceError, OperationalError

from curator.models import IngestionJob, JobKind, LogStatus
from curator.services.deduper import Deduper, compute_fingerprint
from curator.services.extractors.base import ArticleDraft, BaseExtractor, ExtractionError
from curator.services.job_queue import FatalFailure, JobOutcome, JobSuccess, RetryableFailure
from curator.services.resilience import run_blocking
from curator.services.store import ArticleStore
from curator.utils.clock import utcnow

logger = logging.getLogger(__name__)

# Store/queue unavailable: stop the worker instead of burning attempts
STORE_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError)


class JobConfigurationError(Exception):
    """The job cannot run as configured; retrying will not help."""

    pass


@dataclass
class IngestionCounts:
    found: int = 0
    added: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {"found": self.found, "added": self.added, "skipped": self.skipped}


class IngestionWorker:
    """Job handler that turns extractor output into stored articles."""

    def __init__(
        self,
        store: ArticleStore,
        deduper: Deduper,
        extractors: dict[JobKind, BaseExtractor],
        job_timeout: float | None = None,
    ):
        self.store = store
        self.deduper = deduper
        self.extractors = extractors
        self.job_timeout = job_timeout

    async def handle(self, job: IngestionJob) -> JobOutcome:
        """
        Process one claimed job.

        Database calls run in the default executor so a slow query neither
        blocks other jobs nor escapes `job_timeout`. Exceptions from the store
        propagate (the worker cannot make progress); every other failure is
        captured in the outcome and the audit log.
        """
        source = await run_blocking(self.store.get_source, job.source_id)
        log_id = await run_blocking(
            self.store.create_log,
            source.id if source else None,
            job.kind,
            job_id=job.id,
            attempt=job.attempts,
        )
        await run_blocking(self.store.mark_log_processing, log_id)

        counts = IngestionCounts()
        outcome: JobOutcome
        try:
            async with asyncio.timeout(self.job_timeout):
                if source is None:
                    raise JobConfigurationError(f"Source {job.source_id} no longer exists")
                drafts = await self._extract(job)
                counts.found = len(drafts)
                for draft in drafts:
                    await self._ingest_draft(source.id, draft, counts)
            outcome = JobSuccess(counts.as_dict())
        except asyncio.CancelledError:
            await self._finish(
                job, log_id, counts, "Job cancelled before completion", advance_source=source is not None
            )
            raise
        except STORE_UNAVAILABLE_ERRORS:
            raise
        except JobConfigurationError as e:
            outcome = FatalFailure(str(e), counts.as_dict())
        except ExtractionError as e:
            outcome = RetryableFailure(str(e), counts.as_dict())
        except TimeoutError:
            outcome = RetryableFailure(f"Job {job.id} timed out after {self.job_timeout}s", counts.as_dict())
        except Exception as e:
            logger.exception(f"Unexpected error processing job {job.id}: {e}")
            outcome = RetryableFailure(f"{type(e).__name__}: {e}", counts.as_dict())

        error = None if isinstance(outcome, JobSuccess) else outcome.error
        finished_at = await self._finish(job, log_id, counts, error, advance_source=source is not None)
        return replace(outcome, finished_at=finished_at)

    async def _extract(self, job: IngestionJob) -> list[ArticleDraft]:
        try:
            kind = JobKind(job.kind)
        except ValueError:
            raise JobConfigurationError(f"Unknown job kind: {job.kind}")

        extractor = self.extractors.get(kind)
        if extractor is None:
            raise JobConfigurationError(f"No extractor configured for {kind.value} jobs")

        drafts = await extractor.extract(job.url)
        if kind == JobKind.SCRAPE and len(drafts) != 1:
            raise ExtractionError(job.url, f"Scrape produced {len(drafts)} articles, expected 1")
        return drafts

    async def _ingest_draft(self, source_id: uuid.UUID, draft: ArticleDraft, counts: IngestionCounts) -> None:
        fingerprint = compute_fingerprint(draft.title, draft.body)
        dedup = await run_blocking(self.deduper.is_duplicate, draft.url, fingerprint)
        if dedup.is_duplicate:
            counts.skipped += 1
            logger.debug(f"Skipping duplicate {draft.url} (matched on {dedup.matched_on})")
            return

        if await run_blocking(self.store.insert_article, source_id, draft, fingerprint) is None:
            counts.skipped += 1
        else:
            counts.added += 1

    async def _finish(
        self,
        job: IngestionJob,
        log_id: uuid.UUID,
        counts: IngestionCounts,
        error: str | None,
        advance_source: bool = True,
    ) -> datetime:
        """Advance the source and close the log entry with one shared timestamp."""
        finished_at = utcnow()
        if advance_source:
            await run_blocking(self.store.touch_last_fetched, job.source_id, finished_at)

        await run_blocking(
            self.store.finalize_log,
            log_id,
            status=LogStatus.FAILED if error else LogStatus.COMPLETED,
            found=counts.found,
            added=counts.added,
            skipped=counts.skipped,
            error_message=error,
            completed_at=finished_at,
        )

        log_extra = {
            "event": "ingestion_finished",
            "job_id": str(job.id),
            "source_id": str(job.source_id),
            "kind": job.kind,
            **counts.as_dict(),
        }
        if error:
            logger.warning(f"Ingestion failed for job {job.id}: {error}", extra={**log_extra, "status": "failed"})
        else:
            logger.info(
                f"Ingested {counts.added}/{counts.found} articles for source {job.source_id} "
                f"({counts.skipped} skipped)",
                extra={**log_extra, "status": "completed"},
            )
        return finished_at
