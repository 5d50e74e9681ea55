# curator/services/store.py
"""
Article store: persistence for articles, source fetch timestamps and the
ingestion audit log.

Each call opens its own short session from the injected factory, so one
store handle can be shared by scheduler, worker and operator tooling.
"""

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from curator import models
from curator.models import LogStatus
from curator.services.extractors.base import ArticleDraft
from curator.utils.clock import utcnow

logger = logging.getLogger(__name__)


class ArticleStore:
    """Store handle over the relational database."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # Source registry (read-only apart from last_fetched_at)
    # -------------------------------------------------------------------------

    def get_source(self, source_id: uuid.UUID) -> models.Source | None:
        with self._session_factory() as db:
            return db.get(models.Source, source_id)

    def list_active_sources(self) -> list[models.Source]:
        with self._session_factory() as db:
            return list(
                db.execute(
                    select(models.Source)
                    .where(models.Source.is_active.is_(True))
                    .order_by(models.Source.name)
                ).scalars()
            )

    def list_due_sources(self, now: datetime | None = None) -> list[models.Source]:
        """
        Active sources whose fetch interval has elapsed.

        Never-fetched sources come first, then oldest-fetched first. The interval
        comparison is done here rather than in SQL so it works on every dialect.
        """
        now = now or utcnow()
        due = []
        for source in self.list_active_sources():
            if source.last_fetched_at is None:
                due.append(source)
            elif now - source.last_fetched_at >= timedelta(minutes=source.fetch_frequency_minutes):
                due.append(source)

        due.sort(key=lambda s: (s.last_fetched_at is not None, s.last_fetched_at or datetime.min))
        return due

    def touch_last_fetched(self, source_id: uuid.UUID, fetched_at: datetime | None = None) -> None:
        with self._session_factory() as db:
            db.execute(
                update(models.Source)
                .where(models.Source.id == source_id)
                .values(last_fetched_at=fetched_at or utcnow())
            )
            db.commit()

    # -------------------------------------------------------------------------
    # Articles
    # -------------------------------------------------------------------------

    def insert_article(
        self,
        source_id: uuid.UUID,
        draft: ArticleDraft,
        fingerprint: str,
    ) -> models.Article | None:
        """
        Persist a draft as an Article.

        Returns:
            The stored article, or None if the fingerprint unique constraint
            rejected it (another worker stored the same content first)
        """
        article = models.Article(
            id=uuid.uuid4(),
            source_id=source_id,
            title=draft.title[:500],
            url=draft.url,
            body=draft.body,
            author=draft.author[:255] if draft.author else None,
            published_at=draft.published_at,
            category=draft.category.value,
            image_url=draft.image_url,
            fingerprint=fingerprint,
        )
        with self._session_factory() as db:
            db.add(article)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.info(
                    f"Duplicate fingerprint on insert, skipping {draft.url}",
                    extra={"event": "duplicate_write_race", "url": draft.url},
                )
                return None
        return article

    # -------------------------------------------------------------------------
    # Ingestion log
    # -------------------------------------------------------------------------

    def create_log(
        self,
        source_id: uuid.UUID,
        job_type: str,
        job_id: uuid.UUID | None = None,
        attempt: int = 1,
    ) -> uuid.UUID:
        log = models.IngestionLog(
            id=uuid.uuid4(),
            source_id=source_id,
            job_id=job_id,
            job_type=job_type,
            attempt=attempt,
            status=LogStatus.PENDING.value,
        )
        with self._session_factory() as db:
            db.add(log)
            db.commit()
        return log.id

    def mark_log_processing(self, log_id: uuid.UUID, started_at: datetime | None = None) -> None:
        self._update_log(log_id, status=LogStatus.PROCESSING.value, started_at=started_at or utcnow())

    def finalize_log(
        self,
        log_id: uuid.UUID,
        status: LogStatus,
        found: int = 0,
        added: int = 0,
        skipped: int = 0,
        error_message: str | None = None,
        completed_at: datetime | None = None,
    ) -> None:
        self._update_log(
            log_id,
            status=status.value,
            articles_found=found,
            articles_added=added,
            articles_skipped=skipped,
            error_message=error_message,
            completed_at=completed_at or utcnow(),
        )

    def _update_log(self, log_id: uuid.UUID, **values) -> None:
        with self._session_factory() as db:
            db.execute(update(models.IngestionLog).where(models.IngestionLog.id == log_id).values(**values))
            db.commit()

    def recent_logs(self, limit: int = 50) -> list[dict]:
        """Newest-first log entries joined with source name/URL for display."""
        query = (
            select(models.IngestionLog, models.Source.name, models.Source.url)
            .outerjoin(models.Source, models.IngestionLog.source_id == models.Source.id)
            .order_by(models.IngestionLog.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as db:
            rows = db.execute(query).all()

        return [
            {
                "id": log.id,
                "source_id": log.source_id,
                "source_name": source_name,
                "source_url": source_url,
                "job_id": log.job_id,
                "job_type": log.job_type,
                "status": log.status,
                "attempt": log.attempt,
                "articles_found": log.articles_found,
                "articles_added": log.articles_added,
                "articles_skipped": log.articles_skipped,
                "error_message": log.error_message,
                "started_at": log.started_at,
                "completed_at": log.completed_at,
                "created_at": log.created_at,
            }
            for log, source_name, source_url in rows
        ]
