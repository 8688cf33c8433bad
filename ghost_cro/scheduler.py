"""
Scheduler for the weekly watchdog scan

Uses APScheduler so a single-instance deploy does not need an external cron
hitting /api/cron/weekly-scan.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from datetime import timezone

from ghost_cro.config import get_settings
from ghost_cro.models.base import SessionLocal
from ghost_cro.services.watchdog import run_weekly_scan
from ghost_cro.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


async def weekly_scan_job():
    """Weekly watchdog scan (Sunday midnight UTC by default)"""
    db = SessionLocal()
    try:
        result = run_weekly_scan(db)
        log.info(f"Weekly scan completed: {result['storesScanned']} stores scanned")
    except Exception as e:
        log.error(f"Weekly scan error: {str(e)}")
    finally:
        db.close()


def setup_scheduler():
    """Register jobs; the schedule is a crontab string from WEEKLY_SCAN_SCHEDULE"""
    scheduler.add_job(
        weekly_scan_job,
        trigger=CronTrigger.from_crontab(settings.weekly_scan_schedule, timezone=timezone.utc),
        id='weekly_scan',
        name='Weekly Watchdog Scan',
        replace_existing=True,
        max_instances=1
    )


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        log.info("Scheduler stopped")
