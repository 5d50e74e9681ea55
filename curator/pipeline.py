# curator/pipeline.py
"""
Wiring for the ingestion pipeline.

build_pipeline() constructs every component from one session factory and one
Settings object, so the API, the CLI and tests assemble identical graphs.
"""

from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from curator.config import Settings
from curator.models import JobKind
from curator.services.classifier import CategoryClassifier
from curator.services.deduper import Deduper
from curator.services.dispatcher import JobDispatcher
from curator.services.extractors import BaseExtractor, FeedExtractor, PageScraper
from curator.services.ingestion_stats import IngestionStatsService
from curator.services.ingestion_worker import IngestionWorker
from curator.services.job_queue import JobQueue, RetentionPolicy, RetryPolicy
from curator.services.scheduler import Scheduler
from curator.services.store import ArticleStore


@dataclass
class IngestionPipeline:
    store: ArticleStore
    queue: JobQueue
    scheduler: Scheduler
    worker: IngestionWorker
    dispatcher: JobDispatcher
    stats: IngestionStatsService
    extractors: dict[JobKind, BaseExtractor]

    async def close(self) -> None:
        for extractor in self.extractors.values():
            await extractor.close()


def build_queue(session_factory: sessionmaker, settings: Settings) -> JobQueue:
    return JobQueue(
        session_factory,
        retry_policy=RetryPolicy(
            max_attempts=settings.QUEUE_MAX_ATTEMPTS,
            backoff_base_seconds=settings.QUEUE_BACKOFF_BASE_SECONDS,
        ),
        retention=RetentionPolicy(
            completed_max_age=timedelta(hours=settings.QUEUE_COMPLETED_RETENTION_HOURS),
            completed_max_count=settings.QUEUE_COMPLETED_RETENTION_COUNT,
            failed_max_age=timedelta(days=settings.QUEUE_FAILED_RETENTION_DAYS),
        ),
        lease_seconds=settings.QUEUE_LEASE_SECONDS,
    )


def build_pipeline(
    session_factory: sessionmaker,
    settings: Settings,
    extractors: dict[JobKind, BaseExtractor] | None = None,
) -> IngestionPipeline:
    store = ArticleStore(session_factory)
    queue = build_queue(session_factory, settings)

    if extractors is None:
        classifier = CategoryClassifier()
        extractors = {
            JobKind.FEED: FeedExtractor(
                timeout=settings.FEED_TIMEOUT_SECONDS,
                user_agent=settings.HTTP_USER_AGENT,
                classifier=classifier,
            ),
            JobKind.SCRAPE: PageScraper(
                timeout=settings.SCRAPE_TIMEOUT_SECONDS,
                user_agent=settings.HTTP_USER_AGENT,
                classifier=classifier,
            ),
        }

    worker = IngestionWorker(
        store,
        Deduper(session_factory),
        extractors,
        job_timeout=settings.JOB_TIMEOUT_SECONDS,
    )
    dispatcher = JobDispatcher(
        queue,
        worker.handle,
        concurrency=settings.WORKER_CONCURRENCY,
        rate_per_second=settings.WORKER_RATE_PER_SECOND,
        job_timeout=settings.JOB_TIMEOUT_SECONDS + settings.JOB_TIMEOUT_GRACE_SECONDS,
        poll_interval=settings.WORKER_POLL_INTERVAL_SECONDS,
    )

    return IngestionPipeline(
        store=store,
        queue=queue,
        scheduler=Scheduler(store, queue, stagger_seconds=settings.SCHEDULER_STAGGER_SECONDS),
        worker=worker,
        dispatcher=dispatcher,
        stats=IngestionStatsService(queue, store),
        extractors=extractors,
    )
