"""
Scheduler Service for AgroBid

Owns the recurring auction settlement sweep:
- Activates pending auctions whose start time has arrived
- Closes expired auctions as sold or unsold
"""

import logging
from datetime import datetime
from typing import List, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from agrobid.core.config import settings
from agrobid.db.session import SessionLocal
from agrobid.services.settlement_service import AuctionSettlementSweeper, SweepReport

logger = logging.getLogger(__name__)

AUCTION_SWEEP_JOB_ID = "auction_settlement_sweep"


class SchedulerService:
    """
    Background job scheduler using APScheduler.
    Runs the auction settlement sweep on a fixed interval.
    """

    def __init__(
        self,
        sweeper: Optional[AuctionSettlementSweeper] = None,
        session_factory=SessionLocal,
        interval_seconds: int = settings.AUCTION_SWEEP_INTERVAL_SECONDS
    ):
        self.scheduler = BackgroundScheduler()
        self.sweeper = sweeper or AuctionSettlementSweeper()
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.jobs = {}

    def start(self):
        """Start the scheduler and register all jobs."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting scheduler service...")

        self._register_auction_sweep_job()

        self.scheduler.start()
        logger.info(f"Scheduler started with {len(self.scheduler.get_jobs())} jobs")

    def stop(self):
        """Stop the scheduler."""
        if not self.scheduler.running:
            return

        logger.info("Stopping scheduler service...")
        self.scheduler.shutdown()
        logger.info("Scheduler stopped")

    def _register_auction_sweep_job(self):
        """
        Activate and settle auctions.
        Runs every AUCTION_SWEEP_INTERVAL_SECONDS (default once a minute).
        A slow sweep is never overlapped by the next one.
        """
        job = self.scheduler.add_job(
            func=self.run_auction_sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=AUCTION_SWEEP_JOB_ID,
            name="Auction Settlement Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.jobs["auction_sweep"] = job
        logger.info(f"Registered job: {AUCTION_SWEEP_JOB_ID} (every {self.interval_seconds} seconds)")

    def run_auction_sweep(self) -> Optional[SweepReport]:
        """Run one settlement sweep in a fresh session."""
        logger.info("Running auction status check...")
        db = self.session_factory()

        try:
            return self.sweeper.run_sweep(db)
        except Exception as e:
            logger.error(f"Error in auction sweep: {str(e)}")
            db.rollback()
            return None
        finally:
            db.close()

    def get_job_status(self) -> List[dict]:
        """Get status of all scheduled jobs."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger)
            })
        return jobs

    def trigger_job(self, job_id: str):
        """Manually trigger a job."""
        job = self.scheduler.get_job(job_id)
        if job:
            job.modify(next_run_time=datetime.now(job.trigger.timezone))
            logger.info(f"Manually triggered job: {job_id}")
            return True
        return False


# Singleton instance
scheduler_service = SchedulerService()
