"""Notification queue facade: the enqueue contract and the administrative surface."""

from typing import List, Optional, Tuple

from beacon_server.models import NotificationJob
from beacon_server.notifications.controller import ProcessorController
from beacon_server.notifications.janitor import Janitor
from beacon_server.notifications.store import DEFAULT_MAX_ATTEMPTS, NotificationJobStore
from beacon_server.schemas.notifications import JanitorRunResponse, JobQueueStats, NotificationJobCreate, ProcessorStatus


class NotificationQueue:
    def __init__(
        self,
        store: NotificationJobStore,
        controller: ProcessorController,
        janitor: Janitor,
        default_max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.store = store
        self.controller = controller
        self.janitor = janitor
        self.default_max_attempts = default_max_attempts

    async def add_job(self, spec: NotificationJobCreate) -> str:
        """Schedule a notification and wake the processor if it is stopped."""
        job_id = await self.store.add_job(spec, max_attempts=self.default_max_attempts)
        self.controller.on_job_added()
        return job_id

    async def get_job(self, job_id: str) -> Optional[NotificationJob]:
        return await self.store.get_job(job_id)

    async def cancel_job(self, job_id: str) -> bool:
        return await self.store.cancel_job(job_id)

    async def get_stats(self) -> JobQueueStats:
        return await self.store.get_stats()

    async def list_jobs(
        self,
        status: Optional[str] = None,
        created_by: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[NotificationJob], int]:
        return await self.store.list_jobs(status=status, created_by=created_by, limit=limit, offset=offset)

    async def cleanup(self, retention_days: int) -> int:
        return await self.store.cleanup(retention_days)

    async def run_janitor(self) -> JanitorRunResponse:
        return await self.janitor.run_once()

    def get_processor_status(self) -> ProcessorStatus:
        return self.controller.status()

    def start_processor(self, interval: Optional[float] = None) -> None:
        self.controller.start(interval)

    def stop_processor(self) -> None:
        self.controller.stop()
