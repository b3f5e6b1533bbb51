# =====================================================
# FILE: contractflow/services/scheduler_service.py
# Background Job Scheduler for expiry sweeps and renewal reminders
# =====================================================

import asyncio
from datetime import datetime
from typing import Callable, List
import logging

from fastapi.concurrency import run_in_threadpool

from contractflow.core.config import Settings, settings as default_settings
from contractflow.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


class SchedulerService:
    """Background job scheduler"""

    def __init__(self, tick_seconds: int = 60):
        self.jobs: List[dict] = []
        self.running = False
        self.tick_seconds = tick_seconds

    def add_job(self, name: str, func: Callable, interval_minutes: int):
        """Add a scheduled job"""
        self.jobs.append({
            "name": name,
            "func": func,
            "interval": interval_minutes,
            "last_run": None
        })
        logger.info(f"Scheduled job '{name}' every {interval_minutes} minutes")

    def due_jobs(self, now: datetime) -> List[dict]:
        return [
            job for job in self.jobs
            if job["last_run"] is None
            or (now - job["last_run"]).total_seconds() >= job["interval"] * 60
        ]

    async def run_pending(self):
        """Run every job whose interval has elapsed"""
        now = utcnow()
        for job in self.due_jobs(now):
            try:
                logger.info(f"⏱️ Running job: {job['name']}")
                if asyncio.iscoroutinefunction(job["func"]):
                    await job["func"]()
                else:
                    # Jobs hit the database; keep them off the event loop
                    await run_in_threadpool(job["func"])
                job["last_run"] = now
                logger.info(f" Job completed: {job['name']}")
            except Exception as e:
                logger.error(f" Job failed: {job['name']} - {e}")

    async def start(self):
        """Start the scheduler"""
        self.running = True
        logger.info("🚀 Background scheduler started")

        while self.running:
            await self.run_pending()
            await asyncio.sleep(self.tick_seconds)

    def stop(self):
        """Stop the scheduler"""
        self.running = False
        logger.info("Scheduler stopped")


# =====================================================
# SCHEDULER INITIALIZATION
# =====================================================

def setup_scheduler(lifecycle, config: Settings = None) -> SchedulerService:
    """Configure all scheduled jobs"""
    config = config or default_settings
    scheduler = SchedulerService()
    scheduler.add_job("Contract Expiry Sweep", lifecycle.sweep_all_companies, config.EXPIRY_SWEEP_INTERVAL_MINUTES)
    scheduler.add_job("Renewal Reminders", lifecycle.send_renewal_reminders, config.REMINDER_INTERVAL_MINUTES)
    return scheduler
