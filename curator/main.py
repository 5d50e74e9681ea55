# curator/main.py
"""
FastAPI application for the ingestion admin API.

When RUN_BACKGROUND_WORKERS is set, the scheduler loop and one job
dispatcher run inside the API process; otherwise they run as separate
`python -m curator.cli.ingest` processes. A background task that dies (for
example the dispatcher stopping on a store outage) shuts the process down so
its supervisor can restart it.
"""

import asyncio
import logging
import os
import signal
from contextlib import asynccontextmanager

from fastapi import FastAPI

from curator.config import get_settings
from curator.logging_config import configure_logging
from curator.routers.ingestion import get_pipeline
from curator.routers.ingestion import router as ingestion_router

logger = logging.getLogger(__name__)


def on_background_task_done(task: asyncio.Task) -> None:
    """Terminate the process when a background loop exits with an error."""
    if task.cancelled() or task.exception() is None:
        return

    logger.critical(
        f"Background task {task.get_name()} failed, shutting down: {task.exception()}",
        extra={"event": "background_task_failed"},
    )
    os.kill(os.getpid(), signal.SIGTERM)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)

    stop_event = asyncio.Event()
    tasks: list[asyncio.Task] = []
    if settings.RUN_BACKGROUND_WORKERS:
        pipeline = get_pipeline()
        tasks.append(
            asyncio.create_task(
                pipeline.scheduler.run_forever(settings.SCHEDULER_INTERVAL_MINUTES, stop_event),
                name="scheduler",
            )
        )
        tasks.append(asyncio.create_task(pipeline.dispatcher.run(stop_event), name="dispatcher"))
        for task in tasks:
            task.add_done_callback(on_background_task_done)
        logger.info("Background scheduler and dispatcher started")

    yield

    stop_event.set()
    if tasks:
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Background task exited with error: {result}")
        await get_pipeline().close()


app = FastAPI(title="News Curator Ingestion", lifespan=lifespan)

app.include_router(ingestion_router)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "news-curator-ingestion"}
