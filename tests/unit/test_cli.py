"""
Unit tests for the ingestion CLI.
"""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import InterfaceError, OperationalError

from curator.cli import ingest
from curator.config import get_settings
from curator.models import JobKind
from curator.pipeline import build_pipeline
from curator.utils.clock import utcnow


@pytest.fixture
def pipeline(session_factory):
    return build_pipeline(session_factory, get_settings(), extractors={})


@pytest.fixture
def run_cli(pipeline):
    def _run(*argv):
        with patch.object(ingest, "get_pipeline", return_value=pipeline):
            ingest.main(list(argv))

    return _run


class TestParser:
    def test_subcommands(self):
        parser = ingest.build_parser()

        assert parser.parse_args(["worker", "--concurrency", "4"]).concurrency == 4
        assert parser.parse_args(["scheduler"]).interval is None
        assert parser.parse_args(["logs"]).limit == 50
        args = parser.parse_args(["clean", "--days", "3"])
        assert (args.days, args.limit) == (3.0, 1000)

    def test_command_required(self):
        with pytest.raises(SystemExit):
            ingest.build_parser().parse_args([])


class TestCommands:
    def test_trigger(self, run_cli, pipeline, source, capsys):
        run_cli("trigger", str(source.id))

        assert "Enqueued 1 jobs" in capsys.readouterr().out
        assert pipeline.queue.counts()["waiting"] == 1

    def test_trigger_unknown_source_exits(self, run_cli, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run_cli("trigger", str(uuid.uuid4()))

        assert exc_info.value.code == 1
        assert "not found" in capsys.readouterr().out

    def test_trigger_bad_uuid_exits(self, run_cli):
        with pytest.raises(SystemExit):
            run_cli("trigger", "nope")

    def test_schedule_once(self, run_cli, make_source, capsys):
        make_source(name="A")
        make_source(name="B", last_fetched_minutes_ago=5)

        run_cli("schedule-once")

        out = capsys.readouterr().out
        assert "Due sources: 1" in out
        assert "Jobs scheduled: 1" in out

    def test_stats(self, run_cli, pipeline, source, capsys):
        pipeline.scheduler.trigger_source(source.id)

        run_cli("stats")

        out = capsys.readouterr().out
        assert "Waiting:   1" in out
        assert "Paused:    False" in out

    def test_pause_resume(self, run_cli, pipeline):
        run_cli("pause")
        assert pipeline.queue.is_paused() is True
        run_cli("resume")
        assert pipeline.queue.is_paused() is False

    def test_logs_empty(self, run_cli, capsys):
        run_cli("logs")
        assert "No ingestion logs yet" in capsys.readouterr().out

    def test_clean(self, run_cli, pipeline, source, capsys):
        pipeline.queue.enqueue(source.id, JobKind.FEED, source.feed_url, "k")
        job = pipeline.queue.claim_next()
        pipeline.queue.fail(job.id, "bad", retryable=False, now=utcnow() - timedelta(days=3))

        run_cli("clean", "--days", "1")

        assert "Removed 0 completed and 1 failed jobs" in capsys.readouterr().out


class TestWorkerCommand:
    @pytest.mark.parametrize(
        "error",
        [
            OperationalError("SELECT 1", {}, Exception("could not connect")),
            InterfaceError("SELECT 1", {}, Exception("connection already closed")),
        ],
    )
    def test_store_outage_exits_nonzero(self, run_cli, pipeline, error, capsys):
        with patch.object(pipeline.dispatcher, "run", AsyncMock(side_effect=error)):
            with pytest.raises(SystemExit) as exc_info:
                run_cli("worker")

        assert exc_info.value.code == 1
        assert "database unavailable" in capsys.readouterr().err

    def test_concurrency_override(self, run_cli, pipeline):
        with patch.object(pipeline.dispatcher, "run", AsyncMock(return_value=None)):
            run_cli("worker", "--concurrency", "7")

        assert pipeline.dispatcher.concurrency == 7
