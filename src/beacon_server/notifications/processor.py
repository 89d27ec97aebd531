import logging
from typing import Awaitable, Callable, Optional

from beacon_server.models import NotificationJob
from beacon_server.notifications.store import NotificationJobStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5

DeliveryCallback = Callable[[NotificationJob], Awaitable[None]]


def _error_message(exc: BaseException) -> str:
    return str(exc) or "Unknown error"


class NotificationProcessor:
    """Runs one processing pass over due jobs per tick."""

    def __init__(
        self,
        store: NotificationJobStore,
        deliver: DeliveryCallback,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.deliver = deliver
        self.batch_size = batch_size
        self.busy = False
        self.last_processed_at: Optional[int] = None

    async def tick(self) -> int:
        """Claim a batch of due jobs and deliver them one at a time.

        Returns the number of jobs attempted; 0 means the tick was idle or
        another tick was already running.
        """
        if self.busy:
            return 0

        self.busy = True
        try:
            jobs = await self.store.claim_ready(self.batch_size)
            if not jobs:
                return 0

            logger.info(f"Processing {len(jobs)} notification jobs")
            processed = 0
            for job in jobs:
                if await self._process(job):
                    processed += 1
            return processed
        finally:
            self.busy = False

    async def _process(self, job: NotificationJob) -> bool:
        if not await self.store.mark_processing(job.id):
            logger.info(f"Job {job.id} was claimed elsewhere or cancelled; skipping")
            return False

        try:
            await self.deliver(job)
        except Exception as exc:
            await self.store.mark_failed(job.id, _error_message(exc))
        else:
            if await self.store.mark_completed(job.id):
                logger.info(f"Successfully processed notification job {job.id}")
        self.last_processed_at = self.store.now()
        return True
