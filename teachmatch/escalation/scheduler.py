"""Escalation scheduler for periodic timeout sweeps."""

from typing import Any, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from teachmatch.config import settings
from teachmatch.errors import PersistenceError
from teachmatch.escalation.engine import EscalationEngine, SweepResult
from teachmatch.services.notifications import NotificationService
from teachmatch.utils.logging import CorrelationContextManager, get_logger

logger = get_logger(__name__)

SWEEP_JOB_ID = "sweep_request_timeouts"


class EscalationScheduler:
    """Runs the escalation sweep on an interval and dispatches its transitions."""

    def __init__(
        self,
        engine: EscalationEngine,
        notifications: NotificationService,
        interval_seconds: Optional[int] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.engine = engine
        self.notifications = notifications
        self.interval_seconds = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        self.is_running = False

    async def start(self) -> None:
        """Start the escalation scheduler."""
        if self.is_running:
            logger.warning("Escalation scheduler already running")
            return

        self.scheduler.add_job(
            self._run_sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=SWEEP_JOB_ID,
            name="Sweep Lapsed Teaching Requests",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=30,
            replace_existing=True
        )
        self.scheduler.start()
        self.is_running = True

        logger.info("Escalation scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        """Stop the escalation scheduler."""
        if not self.is_running:
            return

        self.scheduler.shutdown(wait=False)
        self.is_running = False
        logger.info("Escalation scheduler stopped")

    async def _run_sweep(self) -> None:
        # A failed run is retried by the next tick
        try:
            await self.trigger_sweep()
        except PersistenceError as e:
            logger.error("Scheduled sweep failed", error=e.message)

    async def trigger_sweep(self) -> SweepResult:
        """Run one sweep now and notify the parties of every applied transition."""
        with CorrelationContextManager() as correlation_id:
            result = await self.engine.sweep()
            for transition in result.transitions:
                await self.notifications.dispatch(transition)

            if result.processed or result.errors:
                logger.info("Sweep run finished", correlation_id=correlation_id, **result.to_dict())
            return result

    def get_job_status(self) -> Dict[str, Any]:
        """Get status of scheduled jobs."""
        if not self.is_running:
            return {"status": "stopped", "jobs": []}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger)
            })

        return {
            "status": "running",
            "jobs": jobs
        }
