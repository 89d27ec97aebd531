"""Janitor: low-frequency retention sweep for terminal notification jobs.

Runs on its own schedule, independent of whether the processor loop is
running, and also recovers jobs abandoned in ``processing``.
"""

import logging

from apscheduler.schedulers.base import BaseScheduler

from beacon_server.notifications.store import NotificationJobStore
from beacon_server.schemas.notifications import JanitorRunResponse

logger = logging.getLogger(__name__)

JANITOR_JOB_ID = "notification-janitor"


class Janitor:
    def __init__(
        self,
        store: NotificationJobStore,
        scheduler: BaseScheduler,
        retention_days: int = 30,
        interval: float = 24 * 3600,
        stale_timeout: int = 600,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.retention_days = retention_days
        self.interval = interval
        self.stale_timeout = stale_timeout

    @property
    def running(self) -> bool:
        return self.scheduler.get_job(JANITOR_JOB_ID) is not None

    def start(self) -> None:
        if self.running:
            return
        self.scheduler.add_job(
            self.sweep,
            "interval",
            seconds=self.interval,
            id=JANITOR_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Janitor scheduled every {self.interval}s (retention={self.retention_days}d)")

    def stop(self) -> None:
        if self.running:
            self.scheduler.remove_job(JANITOR_JOB_ID)

    async def run_once(self) -> JanitorRunResponse:
        """Requeue abandoned claims, then delete expired terminal jobs."""
        requeued = await self.store.requeue_stale(self.stale_timeout)
        if requeued > 0:
            logger.info(f"Janitor: recovered {requeued} abandoned processing jobs")

        deleted = await self.store.cleanup(self.retention_days)
        if deleted > 0:
            logger.info(f"Janitor: deleted {deleted} jobs (retention={self.retention_days}d)")
        return JanitorRunResponse(requeued=requeued, deleted=deleted)

    async def sweep(self) -> None:
        try:
            await self.run_once()
        except Exception:
            logger.exception("Janitor sweep failed")
