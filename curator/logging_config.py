"""
Structured JSON logging for ingestion observability.

Provides structured logging with job IDs for correlating worker, queue and
scheduler log lines, plus a context manager that times a single job.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variables for job correlation
job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)

# Extra record attributes copied into the JSON payload when present
EXTRA_FIELDS = (
    "event",
    "duration_ms",
    "job_id",
    "source_id",
    "kind",
    "attempt",
    "status",
    "found",
    "added",
    "skipped",
    "count",
    "delay_seconds",
    "idempotency_key",
    "url",
)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "job_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add job context if available
        job_id = job_id_var.get()
        if job_id:
            log_data["job_id"] = job_id

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure logging for deployed processes or local development.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("trafilatura").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def log_job(job_id: str, kind: str, source_id: str, attempt: int = 1):
    """
    Context manager for job-level logging.

    Logs job start and end with duration and binds the job id for every
    log line emitted inside the block.

    Usage:
        with log_job(str(job.id), job.kind, str(job.source_id), job.attempts):
            outcome = await worker.handle(job)
    """
    token = job_id_var.set(job_id)
    start_time = time.time()
    logger = logging.getLogger("curator.jobs")
    context = {"job_id": job_id, "kind": kind, "source_id": source_id, "attempt": attempt}

    logger.info(f"Job {job_id} ({kind}) started", extra={"event": "job_start", **context})

    try:
        yield
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Job {job_id} ({kind}) finished",
            extra={"event": "job_finish", "duration_ms": duration_ms, **context},
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"Job {job_id} ({kind}) raised: {e}",
            extra={"event": "job_raised", "duration_ms": duration_ms, **context},
            exc_info=True,
        )
        raise
    finally:
        job_id_var.reset(token)
