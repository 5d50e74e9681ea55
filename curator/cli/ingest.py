# curator/cli/ingest.py
"""
CLI commands for the ingestion pipeline.

Usage:
    python -m curator.cli.ingest worker
    python -m curator.cli.ingest scheduler --interval 15
    python -m curator.cli.ingest schedule-once
    python -m curator.cli.ingest trigger <source_id>
    python -m curator.cli.ingest trigger-all
    python -m curator.cli.ingest stats
    python -m curator.cli.ingest logs --limit 20
    python -m curator.cli.ingest pause
    python -m curator.cli.ingest resume
    python -m curator.cli.ingest clean --days 7
"""

import argparse
import asyncio
import signal
import sys
import uuid

from dotenv import load_dotenv

load_dotenv()


def get_pipeline():
    """Build the pipeline from environment settings."""
    from curator.config import get_settings
    from curator.database import get_session_factory
    from curator.logging_config import configure_logging
    from curator.pipeline import build_pipeline

    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)
    return build_pipeline(get_session_factory(), settings)


def _install_stop_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass


def cmd_worker(args):
    """Run a job dispatcher until interrupted."""
    from curator.services.ingestion_worker import STORE_UNAVAILABLE_ERRORS

    pipeline = get_pipeline()
    if args.concurrency:
        pipeline.dispatcher.concurrency = args.concurrency

    async def run():
        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)
        try:
            await pipeline.dispatcher.run(stop_event)
        finally:
            await pipeline.close()

    try:
        asyncio.run(run())
    except STORE_UNAVAILABLE_ERRORS as e:
        print(f"Worker stopped: database unavailable ({e})", file=sys.stderr)
        sys.exit(1)


def cmd_scheduler(args):
    """Run the periodic scheduler until interrupted."""
    from curator.config import get_settings

    pipeline = get_pipeline()
    interval = args.interval or get_settings().SCHEDULER_INTERVAL_MINUTES

    async def run():
        stop_event = asyncio.Event()
        _install_stop_handlers(stop_event)
        try:
            await pipeline.scheduler.run_forever(interval, stop_event)
        finally:
            await pipeline.close()

    asyncio.run(run())


def cmd_schedule_once(args):
    """Run a single scheduling pass."""
    pipeline = get_pipeline()
    result = pipeline.scheduler.schedule_due()
    print(f"Due sources: {result.sources_due}")
    print(f"Jobs scheduled: {result.total_scheduled}")
    for job_id in result.job_ids:
        print(f"  {job_id}")


def cmd_trigger(args):
    """Enqueue jobs for one source immediately."""
    from curator.services.scheduler import IngestionConfigError

    try:
        source_id = uuid.UUID(args.source_id)
    except ValueError:
        print(f"Error: '{args.source_id}' is not a valid source id")
        sys.exit(1)

    pipeline = get_pipeline()
    try:
        job_ids = pipeline.scheduler.trigger_source(source_id)
    except IngestionConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Enqueued {len(job_ids)} jobs:")
    for job_id in job_ids:
        print(f"  {job_id}")


def cmd_trigger_all(args):
    """Enqueue jobs for every active source."""
    pipeline = get_pipeline()
    result = pipeline.scheduler.trigger_all()
    print(f"Enqueued {result.total_jobs} jobs")
    if result.failures:
        print(f"\nFailures ({len(result.failures)}):")
        for source_id, error in result.failures.items():
            print(f"  {source_id}: {error}")


def cmd_stats(args):
    """Show queue counts."""
    pipeline = get_pipeline()
    stats = pipeline.stats.get_stats()

    print("\n=== Ingestion Queue ===\n")
    print(f"Paused:    {stats.paused}")
    print(f"Waiting:   {stats.waiting}")
    print(f"Active:    {stats.active}")
    print(f"Completed: {stats.completed}")
    print(f"Failed:    {stats.failed}")
    print(f"\nPending:   {stats.pending}")
    print(f"Total:     {stats.total}")


def cmd_logs(args):
    """Show recent ingestion log entries."""
    pipeline = get_pipeline()
    logs = pipeline.stats.recent_logs(limit=args.limit)
    if not logs:
        print("No ingestion logs yet")
        return

    for entry in logs:
        created = entry["created_at"].strftime("%Y-%m-%d %H:%M:%S")
        source = entry["source_name"] or entry["source_id"]
        print(
            f"{created}  {entry['status']:<10} {entry['job_type']:<6} {source}  "
            f"found={entry['articles_found']} added={entry['articles_added']} "
            f"skipped={entry['articles_skipped']}"
        )
        if entry["error_message"]:
            print(f"    error: {entry['error_message']}")


def cmd_pause(args):
    get_pipeline().queue.pause()
    print("Queue paused")


def cmd_resume(args):
    get_pipeline().queue.resume()
    print("Queue resumed")


def cmd_clean(args):
    """Remove terminal jobs older than --days."""
    from curator.models import JobStatus

    pipeline = get_pipeline()
    grace_seconds = args.days * 86400
    completed = pipeline.queue.clean(grace_seconds, limit=args.limit, status=JobStatus.COMPLETED)
    failed = pipeline.queue.clean(grace_seconds, limit=args.limit, status=JobStatus.FAILED)
    print(f"Removed {completed} completed and {failed} failed jobs")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="News Curator Ingestion CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a worker process (repeat for more workers)
  python -m curator.cli.ingest worker --concurrency 5

  # Run the periodic scheduler
  python -m curator.cli.ingest scheduler

  # Ingest one source now
  python -m curator.cli.ingest trigger 5f0c6a9e-8d0b-4c7e-9d43-0b0f0e6a1f2d

  # Remove jobs finished more than 3 days ago
  python -m curator.cli.ingest clean --days 3
        """,
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    worker_parser = subparsers.add_parser("worker", help="Run a job dispatcher")
    worker_parser.add_argument("--concurrency", type=int, default=None, help="Override WORKER_CONCURRENCY")
    worker_parser.set_defaults(func=cmd_worker)

    scheduler_parser = subparsers.add_parser("scheduler", help="Run the periodic scheduler")
    scheduler_parser.add_argument(
        "--interval", type=float, default=None, help="Minutes between passes (default: SCHEDULER_INTERVAL_MINUTES)"
    )
    scheduler_parser.set_defaults(func=cmd_scheduler)

    once_parser = subparsers.add_parser("schedule-once", help="Run one scheduling pass")
    once_parser.set_defaults(func=cmd_schedule_once)

    trigger_parser = subparsers.add_parser("trigger", help="Ingest one source now")
    trigger_parser.add_argument("source_id", help="Source UUID")
    trigger_parser.set_defaults(func=cmd_trigger)

    trigger_all_parser = subparsers.add_parser("trigger-all", help="Ingest every active source now")
    trigger_all_parser.set_defaults(func=cmd_trigger_all)

    stats_parser = subparsers.add_parser("stats", help="Show queue counts")
    stats_parser.set_defaults(func=cmd_stats)

    logs_parser = subparsers.add_parser("logs", help="Show recent ingestion logs")
    logs_parser.add_argument("--limit", type=int, default=50, help="Entries to show (default: 50)")
    logs_parser.set_defaults(func=cmd_logs)

    pause_parser = subparsers.add_parser("pause", help="Stop job delivery")
    pause_parser.set_defaults(func=cmd_pause)

    resume_parser = subparsers.add_parser("resume", help="Resume job delivery")
    resume_parser.set_defaults(func=cmd_resume)

    clean_parser = subparsers.add_parser("clean", help="Remove aged completed/failed jobs")
    clean_parser.add_argument("--days", type=float, default=7, help="Minimum age in days (default: 7)")
    clean_parser.add_argument("--limit", type=int, default=1000, help="Max jobs per status (default: 1000)")
    clean_parser.set_defaults(func=cmd_clean)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
