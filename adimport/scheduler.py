"""
Scheduler for deferred chain links

Uses APScheduler to run each next-month trigger as a one-shot job, so the
invocation that queued it can return immediately.
"""
from apscheduler.schedulers.background import BackgroundScheduler

from adimport.utils.logger import log

scheduler = BackgroundScheduler(
    job_defaults={
        "coalesce": True,
        "max_instances": 1,
        # A link that missed its slot (e.g. during a restart) still runs
        "misfire_grace_time": None,
    }
)


def get_scheduler() -> BackgroundScheduler:
    return scheduler


def start_scheduler():
    """Start the background scheduler"""
    if scheduler.running:
        return
    scheduler.start()
    log.info("Chain scheduler started")


def stop_scheduler():
    """Stop the scheduler, leaving queued links unrun"""
    if not scheduler.running:
        return
    pending = len(scheduler.get_jobs())
    scheduler.shutdown(wait=False)
    if pending:
        log.warning(f"Chain scheduler stopped with {pending} queued month imports")
    else:
        log.info("Chain scheduler stopped")
