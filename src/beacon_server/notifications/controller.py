import logging
from typing import Optional

from apscheduler.schedulers.base import BaseScheduler

from beacon_server.notifications.processor import NotificationProcessor
from beacon_server.schemas.notifications import ProcessorStatus

logger = logging.getLogger(__name__)

PROCESSOR_JOB_ID = "notification-processor"
DEFAULT_INTERVAL = 30.0
IDLE_STOP_TICKS = 40  # ~20 minutes at a 30s interval


class ProcessorController:
    """Starts and stops the processor's polling loop.

    The loop stops itself after ``idle_stop_ticks`` consecutive idle ticks and
    is restarted by ``on_job_added`` when ``start_on_demand`` is set.
    """

    def __init__(
        self,
        processor: NotificationProcessor,
        scheduler: BaseScheduler,
        interval: float = DEFAULT_INTERVAL,
        idle_stop_ticks: int = IDLE_STOP_TICKS,
        start_on_demand: bool = True,
    ) -> None:
        self.processor = processor
        self.scheduler = scheduler
        self.interval = interval
        self.idle_stop_ticks = idle_stop_ticks
        self.start_on_demand = start_on_demand
        self.idle_ticks = 0

    @property
    def running(self) -> bool:
        return self.scheduler.get_job(PROCESSOR_JOB_ID) is not None

    def start(self, interval: Optional[float] = None) -> None:
        if self.running:
            logger.info("Job processor is already running")
            return

        if interval is not None:
            self.interval = interval
        self.idle_ticks = 0
        self.scheduler.add_job(
            self.run_tick,
            "interval",
            seconds=self.interval,
            id=PROCESSOR_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"Starting notification job processor with {self.interval}s interval")

    def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.remove_job(PROCESSOR_JOB_ID)
        logger.info("Job processor stopped")

    def on_job_added(self) -> None:
        if self.start_on_demand and not self.running:
            self.start()

    async def run_tick(self) -> None:
        if self.processor.busy:
            logger.info("Skipping job processing - already in progress")
            return

        try:
            processed = await self.processor.tick()
        except Exception:
            logger.exception("Job processing error")
            return

        if processed > 0:
            self.idle_ticks = 0
            return

        self.idle_ticks += 1
        if self.idle_ticks >= self.idle_stop_ticks:
            logger.info("No jobs for a while; stopping notification job processor to save resources")
            self.stop()
            self.idle_ticks = 0

    def status(self) -> ProcessorStatus:
        return ProcessorStatus(
            running=self.running,
            busy=self.processor.busy,
            idle_ticks=self.idle_ticks,
            interval=self.interval,
            last_processed_at=self.processor.last_processed_at,
        )
