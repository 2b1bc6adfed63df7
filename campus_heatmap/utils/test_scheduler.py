from unittest.mock import MagicMock

from campus_heatmap.utils.scheduler import REFRESH_JOB_ID, SWEEP_JOB_ID, reschedule, start_scheduler


def test_scheduler_runs_sweep_and_refresh():
    sweeper, builder = MagicMock(), MagicMock()
    scheduler = start_scheduler(sweeper, builder, interval_seconds=10)
    try:
        assert {job.id for job in scheduler.get_jobs()} == {SWEEP_JOB_ID, REFRESH_JOB_ID}
        assert scheduler.get_job(SWEEP_JOB_ID).trigger.interval.total_seconds() == 10

        reschedule(scheduler, 30)
        assert scheduler.get_job(REFRESH_JOB_ID).trigger.interval.total_seconds() == 30
    finally:
        scheduler.shutdown(wait=False)


def test_scheduler_without_builder():
    scheduler = start_scheduler(MagicMock(), interval_seconds=5)
    try:
        assert [job.id for job in scheduler.get_jobs()] == [SWEEP_JOB_ID]
    finally:
        scheduler.shutdown(wait=False)
