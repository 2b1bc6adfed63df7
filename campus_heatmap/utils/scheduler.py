import logging

from apscheduler.schedulers.background import BackgroundScheduler

from ..config import SWEEP_INTERVAL_SECONDS

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "sweep_expired_reports"
REFRESH_JOB_ID = "refresh_heat_layer"


def start_scheduler(sweeper, builder=None, interval_seconds=SWEEP_INTERVAL_SECONDS):
    """Run the sweeper (and the view refresh, if given) every ``interval_seconds``."""
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        sweeper.tick,
        "interval",
        seconds=interval_seconds,
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    if builder is not None:
        # reports also age out of the view when nothing in the store changes
        scheduler.add_job(
            builder.refresh,
            "interval",
            seconds=interval_seconds,
            id=REFRESH_JOB_ID,
            max_instances=1,
            coalesce=True,
        )
    scheduler.start()
    logger.info(f"[Scheduler] Sweeping every {interval_seconds}s")
    return scheduler


def reschedule(scheduler, interval_seconds):
    for job_id in (SWEEP_JOB_ID, REFRESH_JOB_ID):
        if scheduler.get_job(job_id) is not None:
            scheduler.reschedule_job(job_id, trigger="interval", seconds=interval_seconds)
    logger.info(f"[Scheduler] Sweep interval changed to {interval_seconds}s")
