"""
Perfmon maintenance scheduler.
Uses APScheduler to run the daily retention cleanup.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from perfmon.core.config import settings

logger = logging.getLogger("perfmon.scheduler")

scheduler = BackgroundScheduler(timezone="UTC")


def job_retention_cleanup():
    """Daily purge of usage logs and custom metrics past the retention window."""
    logger.info("=== SCHEDULED JOB: retention cleanup started ===")
    try:
        from perfmon.services.performance import cleanup_old_records
        result = cleanup_old_records(settings.retention_days)
        logger.info(
            f"Retention cleanup complete: {result.usage_logs_deleted} usage logs, "
            f"{result.metrics_deleted} metrics removed"
        )
    except Exception as e:
        logger.error(f"Retention cleanup job failed: {e}", exc_info=True)


def start_scheduler():
    """
    Register and start all scheduled jobs.
    Called once at application startup.
    """
    if scheduler.running:
        logger.warning("Scheduler already running, skipping start")
        return

    scheduler.add_job(
        job_retention_cleanup,
        CronTrigger(hour=settings.cleanup_hour, minute=0),
        id="usage_retention_daily",
        name="Daily usage log retention cleanup",
        replace_existing=True,
    )

    scheduler.start()

    jobs = scheduler.get_jobs()
    logger.info(f"Scheduler started with {len(jobs)} jobs:")
    for job in jobs:
        logger.info(f"  - {job.name} (next run: {job.next_run_time})")


def stop_scheduler():
    """Gracefully shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler status and next run times."""
    jobs = scheduler.get_jobs() if scheduler.running else []
    return {
        "running": scheduler.running,
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            }
            for job in jobs
        ],
    }
