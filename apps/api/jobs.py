import logging
import os

from apscheduler.executors.pool import ThreadPoolExecutor  # type: ignore[import-untyped]
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from fastapi import BackgroundTasks

from packages.core.errors import PipelineError
from packages.worker.build import run_publish_pipeline

logger = logging.getLogger(__name__)

# One worker: queued runs publish one at a time, in arrival order.
scheduler = AsyncIOScheduler(executors={"default": ThreadPoolExecutor(max_workers=1)})


def run_pipeline_job(branch: str | None, trigger: str) -> None:
    try:
        run_publish_pipeline(branch=branch, trigger=trigger)
    except PipelineError:
        # Already logged and recorded on the run row.
        return


def enqueue_pipeline_run(
    background: BackgroundTasks, branch: str | None, trigger: str
) -> None:
    if scheduler.running:
        scheduler.add_job(
            run_pipeline_job,
            kwargs={"branch": branch, "trigger": trigger},
            misfire_grace_time=None,
        )
        logger.info("Queued pipeline run for %s (%s)", branch, trigger)
        return
    background.add_task(run_pipeline_job, branch, trigger)


def start_scheduler() -> None:
    if os.getenv("PAGESMITH_ENABLE_SCHEDULER", "1") == "0":
        logger.info("APScheduler disabled via env; runs use background tasks")
        return
    if not scheduler.running:
        scheduler.start()
    logger.info("APScheduler started with a single pipeline worker")


def stop_scheduler() -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
