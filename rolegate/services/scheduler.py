import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from rolegate.core.config import settings
from rolegate.schemas.accounts import ReconciliationResult
from rolegate.services.batch_runner import BatchVerificationRunner

logger = logging.getLogger(__name__)

JOB_ID = "verify_all_users"


class VerificationScheduler:
    """
    Periodic batch verification.

    - scheduled: cron expression (default every 6 hours, UTC)
    - manual: trigger_manual() runs the same batch and returns its result
    Overlapping runs are not prevented; reconciling a subject twice with the
    same inputs converges to the same roles.
    """

    def __init__(
        self,
        runner: BatchVerificationRunner,
        schedule: Optional[str] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self._runner = runner
        self.schedule = schedule or settings.SCHEDULE_INTERVAL
        self._scheduler = scheduler
        self.last_result: Optional[ReconciliationResult] = None
        self.last_run_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and bool(self._scheduler.running)

    def start(self) -> None:
        """Register the cron job, call from inside the running event loop."""
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone="UTC")
        trigger = CronTrigger.from_crontab(self.schedule, timezone="UTC")
        self._scheduler.add_job(
            self._run_scheduled,
            trigger,
            id=JOB_ID,
            replace_existing=True,
            max_instances=2,
            coalesce=True,
        )
        if not self._scheduler.running:
            self._scheduler.start()
        logger.info("scheduled verification job started with schedule: %s", self.schedule)

    def shutdown(self) -> None:
        if self.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduled verification job stopped")

    def next_run_time(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    async def trigger_manual(self) -> ReconciliationResult:
        logger.info("manual verification triggered")
        return await self._run()

    async def _run(self) -> ReconciliationResult:
        result = await self._runner.run_all()
        self.last_result = result
        self.last_run_at = datetime.now(timezone.utc)
        return result

    async def _run_scheduled(self) -> None:
        logger.info("running scheduled verification job (schedule: %s)", self.schedule)
        try:
            await self._run()
        except Exception:
            logger.exception("error in scheduled verification job")
