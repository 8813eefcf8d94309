"""
# Reconciliation Service

Runs the consistency reconciliation pass on a fixed interval.

Approval side effects (role grants, manager promotions) are written after the
status change commits. When such a write fails, the status change stays and
the drift is logged. This service replays the missing writes periodically so
drift does not outlive one interval.

## Configuration

| Setting | Default | Meaning |
|---|---|---|
| `RECONCILIATION_ENABLED` | `False` | Start the job with the application |
| `RECONCILIATION_INTERVAL_MINUTES` | `15` | Minutes between passes |

Built on APScheduler's `AsyncIOScheduler`, so passes run on the server's event loop.
"""

from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from clubsphere.config import settings
from clubsphere.managers.consistency_manager import ConsistencyPropagator, consistency_propagator
from clubsphere.managers.logging_manager import get_logger

logger = get_logger(prefix="[Reconciliation]")

JOB_ID = "consistency_reconciliation"


class ReconciliationService:
    """Schedules `ConsistencyPropagator.reconcile()` as an interval job."""

    def __init__(self, propagator: Optional[ConsistencyPropagator] = None, interval_minutes: Optional[int] = None):
        self.propagator = propagator or consistency_propagator
        self.interval_minutes = interval_minutes or settings.RECONCILIATION_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self):
        """Register the job and start the scheduler."""
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Consistency reconciliation",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("Reconciliation service started (every %d minutes)", self.interval_minutes)

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reconciliation service stopped")

    async def run_once(self):
        """Run one reconciliation pass. Errors are logged; the next pass still runs."""
        try:
            result = await self.propagator.reconcile()
        except Exception as e:
            logger.error("Scheduled reconciliation failed: %s", e, exc_info=True)
            return None
        if result.drift.total:
            logger.info(
                "Scheduled reconciliation repaired %d role grants and %d promotions",
                result.role_grants_repaired,
                result.promotions_repaired,
            )
        return result


reconciliation_service = ReconciliationService()
