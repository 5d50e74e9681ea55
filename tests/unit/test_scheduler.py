"""
Unit tests for the ingestion scheduler.

Covers:
- due-source selection and ordering
- staggered delays within one pass
- idempotency keys (no duplicate in-flight jobs per source/kind/window)
- operator triggers and their configuration errors
- the periodic loop surviving a failed pass
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from curator import models
from curator.models import JobKind
from curator.services.job_queue import JobQueue
from curator.services.scheduler import (
    IngestionConfigError,
    NoIngestionMethodError,
    ScheduleResult,
    Scheduler,
    SourceInactiveError,
    SourceNotFoundError,
    idempotency_key,
    planned_jobs,
)
from curator.utils.clock import utcnow


@pytest.fixture
def scheduler(store, queue):
    return Scheduler(store, queue, stagger_seconds=1.0)


def _jobs(session_factory) -> list[models.IngestionJob]:
    with session_factory() as db:
        return list(db.query(models.IngestionJob).order_by(models.IngestionJob.run_at).all())


class TestHelpers:
    def test_planned_jobs_feed_then_scrape(self, make_source):
        source = make_source(feed_url="https://example.com/rss", scrape_enabled=True)
        assert planned_jobs(source) == [
            (JobKind.FEED, "https://example.com/rss"),
            (JobKind.SCRAPE, source.url),
        ]

    def test_planned_jobs_none(self, make_source):
        assert planned_jobs(make_source(feed_url=None, scrape_enabled=False)) == []

    def test_idempotency_key_buckets_by_fetch_interval(self, make_source):
        source = make_source(fetch_frequency_minutes=60)
        start = datetime(2025, 10, 6, 12, 0, 0)

        key = idempotency_key(source, JobKind.FEED, start)
        assert key == f"{source.id}:feed:{int((start - datetime(1970, 1, 1)).total_seconds()) // 3600}"
        assert idempotency_key(source, JobKind.FEED, start + timedelta(minutes=59)) == key
        assert idempotency_key(source, JobKind.FEED, start + timedelta(minutes=60)) != key
        assert idempotency_key(source, JobKind.SCRAPE, start) != key


class TestScheduleDue:
    """Tests for Scheduler.schedule_due."""

    def test_selects_due_sources_in_order(self, session_factory, store, scheduler, make_source):
        """Never-fetched A and overdue B are due (A first); recently fetched C is not."""
        b = make_source(name="B", last_fetched_minutes_ago=120, fetch_frequency_minutes=60)
        c = make_source(name="C", last_fetched_minutes_ago=10, fetch_frequency_minutes=60)
        a = make_source(name="A", last_fetched_minutes_ago=None)
        make_source(name="D", is_active=False)

        due = store.list_due_sources(utcnow())
        assert [s.id for s in due] == [a.id, b.id]

        result = scheduler.schedule_due()

        assert result.sources_due == 2
        assert result.total_scheduled == 2
        assert [job.source_id for job in _jobs(session_factory)] == [a.id, b.id]
        assert c.id not in {job.source_id for job in _jobs(session_factory)}

    def test_oldest_fetched_first(self, store, make_source):
        newer = make_source(name="newer", last_fetched_minutes_ago=90)
        older = make_source(name="older", last_fetched_minutes_ago=300)

        assert [s.id for s in store.list_due_sources()] == [older.id, newer.id]

    def test_exact_interval_boundary_is_due(self, store, make_source):
        now = utcnow()
        source = make_source(fetch_frequency_minutes=30)
        with store._session_factory() as db:
            db.get(models.Source, source.id).last_fetched_at = now - timedelta(minutes=30)
            db.commit()

        assert [s.id for s in store.list_due_sources(now)] == [source.id]

    def test_stagger_is_non_decreasing(self, session_factory, scheduler, make_source):
        for name in ("A", "B", "C"):
            make_source(name=name, scrape_enabled=True)
        now = utcnow()

        result = scheduler.schedule_due(now=now)

        assert result.total_scheduled == 6
        delays = [(job.run_at - now).total_seconds() for job in _jobs(session_factory)]
        assert delays == [0.0, 1.0, 2.0, 3.0, 4.0, 5.0]
        assert delays == sorted(delays)

    def test_feed_emitted_before_scrape(self, session_factory, scheduler, make_source):
        make_source(scrape_enabled=True)
        scheduler.schedule_due()
        assert [job.kind for job in _jobs(session_factory)] == ["feed", "scrape"]

    def test_sources_without_method_skipped(self, session_factory, scheduler, make_source):
        make_source(name="nothing", feed_url=None, scrape_enabled=False)
        feed_only = make_source(name="feed")

        result = scheduler.schedule_due()

        assert result.total_scheduled == 1
        assert [job.source_id for job in _jobs(session_factory)] == [feed_only.id]

    def test_second_pass_in_same_window_is_noop(self, scheduler, queue, make_source):
        make_source()
        now = utcnow()

        assert scheduler.schedule_due(now=now).total_scheduled == 1
        assert scheduler.schedule_due(now=now).total_scheduled == 0
        assert queue.counts()["waiting"] == 1

    def test_does_not_touch_sources(self, store, scheduler, make_source):
        source = make_source(last_fetched_minutes_ago=120)
        before = store.get_source(source.id).last_fetched_at

        scheduler.schedule_due()

        assert store.get_source(source.id).last_fetched_at == before

    def test_failure_on_one_source_continues(self, session_factory, store, make_source):
        first = make_source(name="first")
        second = make_source(name="second")
        queue = JobQueue(session_factory)
        original = queue.enqueue

        def flaky_enqueue(source_id, *args, **kwargs):
            if source_id == first.id:
                raise RuntimeError("queue hiccup")
            return original(source_id, *args, **kwargs)

        queue.enqueue = flaky_enqueue
        result = Scheduler(store, queue).schedule_due()

        assert result.total_scheduled == 1
        assert [job.source_id for job in _jobs(session_factory)] == [second.id]


class TestTriggers:
    """Tests for trigger_source / trigger_all."""

    def test_trigger_source_enqueues_every_method(self, scheduler, queue, make_source):
        source = make_source(scrape_enabled=True, last_fetched_minutes_ago=1)

        job_ids = scheduler.trigger_source(source.id)

        assert len(job_ids) == 2
        assert queue.counts()["waiting"] == 2

    def test_trigger_source_is_idempotent_while_in_flight(self, scheduler, make_source):
        source = make_source()
        assert scheduler.trigger_source(source.id) == scheduler.trigger_source(source.id)

    def test_trigger_unknown_source(self, scheduler):
        with pytest.raises(SourceNotFoundError):
            scheduler.trigger_source(uuid.uuid4())

    def test_trigger_inactive_source(self, scheduler, make_source):
        source = make_source(is_active=False)
        with pytest.raises(SourceInactiveError):
            scheduler.trigger_source(source.id)

    def test_trigger_source_without_method(self, scheduler, make_source):
        source = make_source(feed_url=None, scrape_enabled=False)
        with pytest.raises(NoIngestionMethodError) as exc_info:
            scheduler.trigger_source(source.id)
        assert isinstance(exc_info.value, IngestionConfigError)

    def test_trigger_all_collects_failures(self, scheduler, make_source):
        good = make_source(name="A good")
        bad = make_source(name="B bad", feed_url=None, scrape_enabled=False)
        make_source(name="C inactive", is_active=False)

        result = scheduler.trigger_all()

        assert result.total_jobs == 1
        assert list(result.failures) == [str(bad.id)]
        assert "No ingestion methods" in result.failures[str(bad.id)]
        assert good.id not in result.failures

    def test_trigger_all_continues_after_unexpected_error(self, scheduler, make_source):
        make_source(name="A")
        make_source(name="B")

        with patch.object(
            Scheduler,
            "trigger_source",
            side_effect=[RuntimeError("boom"), [uuid.uuid4()]],
        ):
            result = scheduler.trigger_all()

        assert result.total_jobs == 1
        assert len(result.failures) == 1


class TestRunForever:
    """Tests for the periodic loop."""

    @pytest.mark.asyncio
    async def test_failed_pass_does_not_stop_loop(self, scheduler):
        scheduler.schedule_due = MagicMock(side_effect=[RuntimeError("db blip"), ScheduleResult(), ScheduleResult()])
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run_forever(interval_minutes=0.0005, stop_event=stop_event))
        for _ in range(100):
            if scheduler.schedule_due.call_count >= 2:
                break
            await asyncio.sleep(0.01)
        stop_event.set()
        await asyncio.wait_for(task, timeout=5)

        assert scheduler.schedule_due.call_count >= 2

    @pytest.mark.asyncio
    async def test_runs_immediately_and_stops(self, scheduler):
        scheduler.schedule_due = MagicMock(return_value=ScheduleResult())
        stop_event = asyncio.Event()

        task = asyncio.create_task(scheduler.run_forever(interval_minutes=60, stop_event=stop_event))
        await asyncio.sleep(0.02)
        stop_event.set()
        await asyncio.wait_for(task, timeout=5)

        assert scheduler.schedule_due.call_count == 1
