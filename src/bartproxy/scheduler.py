"""APScheduler setup for the background refresh loops."""

import logging
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)


def create_scheduler() -> BackgroundScheduler:
    """Create the scheduler shared by the feed poller and the dataset updater."""
    return BackgroundScheduler(timezone="UTC")


def add_interval_job(
    scheduler: BackgroundScheduler,
    func: Callable,
    job_id: str,
    name: str,
    **interval,
) -> None:
    """
    Register ``func`` to run every ``interval`` (seconds=..., hours=...).

    Each job is its own loop: a slow run of one job never delays another.
    """
    scheduler.add_job(
        func,
        "interval",
        id=job_id,
        name=name,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        **interval,
    )
    logger.debug(f"Scheduled {job_id} every {interval}")
