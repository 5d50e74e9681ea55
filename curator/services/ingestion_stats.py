# curator/services/ingestion_stats.py
"""
Read-only views over the queue and the ingestion audit log.
"""

from dataclasses import asdict, dataclass

from curator.services.job_queue import JobQueue
from curator.services.store import ArticleStore


@dataclass
class QueueStats:
    waiting: int
    active: int
    completed: int
    failed: int
    paused: bool

    @property
    def pending(self) -> int:
        return self.waiting + self.active

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed

    def as_dict(self) -> dict:
        return {**asdict(self), "pending": self.pending, "total": self.total}


class IngestionStatsService:
    """Queue counts and recent log entries for operators."""

    DEFAULT_LOG_LIMIT = 50

    def __init__(self, queue: JobQueue, store: ArticleStore):
        self.queue = queue
        self.store = store

    def get_stats(self) -> QueueStats:
        counts = self.queue.counts()
        return QueueStats(
            waiting=counts["waiting"],
            active=counts["active"],
            completed=counts["completed"],
            failed=counts["failed"],
            paused=self.queue.is_paused(),
        )

    def recent_logs(self, limit: int = DEFAULT_LOG_LIMIT) -> list[dict]:
        return self.store.recent_logs(limit=limit)
