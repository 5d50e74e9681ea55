"""
Ingestion pipeline services.
"""

from curator.services.classifier import CategoryClassifier
from curator.services.deduper import Deduper, compute_fingerprint
from curator.services.dispatcher import JobDispatcher
from curator.services.ingestion_stats import IngestionStatsService
from curator.services.ingestion_worker import IngestionWorker
from curator.services.job_queue import FatalFailure, JobQueue, JobSuccess, RetryableFailure
from curator.services.scheduler import (
    IngestionConfigError,
    NoIngestionMethodError,
    Scheduler,
    SourceInactiveError,
    SourceNotFoundError,
)
from curator.services.store import ArticleStore

__all__ = [
    "ArticleStore",
    "CategoryClassifier",
    "Deduper",
    "compute_fingerprint",
    "JobQueue",
    "JobSuccess",
    "RetryableFailure",
    "FatalFailure",
    "JobDispatcher",
    "IngestionWorker",
    "IngestionStatsService",
    "Scheduler",
    "IngestionConfigError",
    "SourceNotFoundError",
    "SourceInactiveError",
    "NoIngestionMethodError",
]
