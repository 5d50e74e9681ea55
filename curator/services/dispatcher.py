# curator/services/dispatcher.py
"""
Job dispatcher: pulls jobs from the durable queue and runs them.

At most `concurrency` jobs run at once and delivery is capped at
`rate_per_second`. Each job is bounded by a timeout; a timeout counts as a
retryable failure. Queue calls run in the default executor, like the
worker's store calls, so a slow query never stalls other running jobs.
Housekeeping (stalled-lease recovery and retention pruning) runs
periodically inside the same loop.

Only store unavailability stops the dispatcher; it is re-raised from run().
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from curator.logging_config import log_job
from curator.models import IngestionJob
from curator.services.ingestion_worker import STORE_UNAVAILABLE_ERRORS
from curator.services.job_queue import (
    FatalFailure,
    JobOutcome,
    JobQueue,
    JobSuccess,
    RetryableFailure,
)
from curator.services.resilience import JobTimeoutError, RateLimiter, run_blocking, with_timeout
from curator.utils.clock import utcnow

logger = logging.getLogger(__name__)

JobHandler = Callable[[IngestionJob], Awaitable[JobOutcome]]


class JobDispatcher:
    """Concurrent, rate-limited consumer of the ingestion queue."""

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        concurrency: int = 5,
        rate_per_second: float = 10.0,
        job_timeout: float = 120.0,
        poll_interval: float = 1.0,
        housekeeping_interval: float = 60.0,
    ):
        self.queue = queue
        self.handler = handler
        self.concurrency = concurrency
        self.job_timeout = job_timeout
        self.poll_interval = poll_interval
        self.housekeeping_interval = housekeeping_interval
        self.limiter = RateLimiter.per_second(rate_per_second)
        self._fatal_error: BaseException | None = None
        self._last_housekeeping = 0.0

    # -------------------------------------------------------------------------
    # Single job
    # -------------------------------------------------------------------------

    async def process_job(self, job: IngestionJob) -> str | None:
        """
        Run the handler for a claimed job and record its outcome.

        Returns:
            The job's status after recording the outcome
        """
        with log_job(str(job.id), job.kind, str(job.source_id), job.attempts):
            try:
                outcome = await with_timeout(
                    self.handler(job),
                    self.job_timeout,
                    f"Job {job.id} timed out",
                )
            except JobTimeoutError as e:
                outcome = RetryableFailure(str(e))
            except STORE_UNAVAILABLE_ERRORS:
                raise
            except Exception as e:
                logger.exception(f"Handler raised for job {job.id}: {e}")
                outcome = RetryableFailure(f"{type(e).__name__}: {e}")

            return await self.record_outcome(job, outcome)

    async def record_outcome(self, job: IngestionJob, outcome: JobOutcome) -> str | None:
        """Complete or fail the job, stamped with the handler's finish time when it reported one."""
        now = outcome.finished_at or utcnow()
        if isinstance(outcome, JobSuccess):
            await run_blocking(self.queue.complete, job.id, outcome.result, now=now)
            return "completed"
        return await run_blocking(
            self.queue.fail,
            job.id,
            outcome.error,
            retryable=not isinstance(outcome, FatalFailure),
            result=outcome.result,
            now=now,
        )

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    async def drain(self) -> int:
        """
        Process jobs until nothing is due (or the queue is paused).

        Used by one-shot tooling and tests. Returns the number of jobs run.
        """
        processed = 0
        while True:
            batch = []
            for _ in range(self.concurrency):
                await self.limiter.acquire()
                job = await run_blocking(self.queue.claim_next)
                if job is None:
                    break
                batch.append(job)
            if not batch:
                return processed
            await asyncio.gather(*(self.process_job(job) for job in batch))
            processed += len(batch)

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """
        Run until `stop_event` is set, then wait for in-flight jobs.

        Raises:
            The store error that made the dispatcher stop, if any
        """
        stop_event = stop_event or asyncio.Event()
        semaphore = asyncio.Semaphore(self.concurrency)
        in_flight: set[asyncio.Task] = set()

        logger.info(
            f"Dispatcher started (concurrency={self.concurrency}, "
            f"rate={self.limiter.tokens_per_second}/s)",
            extra={"event": "dispatcher_started"},
        )
        try:
            while not stop_event.is_set():
                await self._housekeeping()

                if await run_blocking(self.queue.is_paused):
                    await self._wait(stop_event, self.poll_interval)
                    continue

                await semaphore.acquire()
                await self.limiter.acquire()
                job = await run_blocking(self.queue.claim_next)
                if job is None:
                    semaphore.release()
                    await self._wait(stop_event, self.poll_interval)
                    continue

                task = asyncio.create_task(self._run_slot(job, semaphore, stop_event))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
        finally:
            if in_flight:
                await asyncio.gather(*in_flight, return_exceptions=True)
            logger.info("Dispatcher stopped", extra={"event": "dispatcher_stopped"})

        if self._fatal_error is not None:
            raise self._fatal_error

    async def _run_slot(self, job: IngestionJob, semaphore: asyncio.Semaphore, stop_event: asyncio.Event) -> None:
        try:
            await self.process_job(job)
        except STORE_UNAVAILABLE_ERRORS as e:
            logger.critical(f"Store unavailable, stopping dispatcher: {e}")
            self._fatal_error = e
            stop_event.set()
        except Exception as e:
            # Outcome was not recorded; the lease expiry re-delivers the job
            logger.exception(
                f"Failed to record outcome for job {job.id}: {e}",
                extra={"event": "job_record_failed", "job_id": str(job.id)},
            )
        finally:
            semaphore.release()

    async def _housekeeping(self) -> None:
        now = time.monotonic()
        if now - self._last_housekeeping < self.housekeeping_interval:
            return
        self._last_housekeeping = now
        await run_blocking(self.queue.recover_stalled)
        await run_blocking(self.queue.prune)

    @staticmethod
    async def _wait(stop_event: asyncio.Event, seconds: float) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass
