import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import col, select

from beacon_server.database import current_timestamp, get_session
from beacon_server.models import NotificationJob
from beacon_server.notifications.lifecycle import (
    CANCELLABLE_STATUSES,
    TERMINAL_STATUSES,
    eligible_conditions,
    is_terminal,
    status_after_failure,
    transition,
)
from beacon_server.schemas.notifications import JobQueueStats, JobStatus, NotificationJobCreate

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400
MAX_RETENTION_DAYS = 365
DEFAULT_MAX_ATTEMPTS = 3
STALE_ERROR = "Processing timed out"


class NotificationJobStore:
    """Durable storage for notification jobs.

    Every status change is a conditional write on the expected current status,
    so a job that reached a terminal state is never overwritten by a late
    writer, and two processors cannot both move the same job to processing.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Callable[[], int] = current_timestamp,
    ) -> None:
        self._session_maker = session_maker
        self._clock = clock

    def now(self) -> int:
        return self._clock()

    async def add_job(self, spec: NotificationJobCreate, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> str:
        """Persist a new pending job and return its id."""
        actions = [action.model_dump() for action in spec.actions] if spec.actions else None
        job = NotificationJob(
            title=spec.title,
            body=spec.body,
            icon=spec.icon,
            badge=spec.badge,
            image=spec.image,
            data=spec.data,
            actions=actions,
            tag=spec.tag,
            require_interaction=spec.require_interaction,
            silent=spec.silent,
            vibrate=spec.vibrate,
            user_ids=spec.user_ids,
            all_users=spec.all_users,
            scheduled_time=spec.scheduled_timestamp,
            created_at=self.now(),
            created_by=spec.created_by,
            attempts=0,
            max_attempts=spec.max_attempts or max_attempts,
            status=JobStatus.PENDING.value,
        )
        async with get_session(self._session_maker) as session:
            session.add(job)
            await session.commit()
            logger.info(f"Added notification job {job.id} scheduled for {job.scheduled_time}")
            return job.id

    async def get_job(self, job_id: str) -> Optional[NotificationJob]:
        async with get_session(self._session_maker, read_only=True) as session:
            return await session.get(NotificationJob, job_id)

    async def claim_ready(self, limit: int) -> List[NotificationJob]:
        """Return up to ``limit`` due pending jobs, oldest due first.

        Claiming does not change the jobs; ``mark_processing`` does.
        """
        if limit <= 0:
            return []
        statement = (
            select(NotificationJob)
            .where(*eligible_conditions(self.now()))
            .order_by(
                col(NotificationJob.scheduled_time).asc(),
                col(NotificationJob.created_at).asc(),
                col(NotificationJob.id).asc(),
            )
            .limit(limit)
        )
        async with get_session(self._session_maker, read_only=True) as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def mark_processing(self, job_id: str) -> bool:
        """Move a pending job to processing and count the attempt.

        Returns False when the job is no longer claimable.
        """
        statement = (
            update(NotificationJob)
            .where(
                col(NotificationJob.id) == job_id,
                col(NotificationJob.status) == JobStatus.PENDING.value,
                col(NotificationJob.attempts) < col(NotificationJob.max_attempts),
            )
            .values(
                status=transition(JobStatus.PENDING, JobStatus.PROCESSING).value,
                attempts=col(NotificationJob.attempts) + 1,
                started_at=self.now(),
            )
            .execution_options(synchronize_session=False)
        )
        async with get_session(self._session_maker) as session:
            result = await session.execute(statement)
            return result.rowcount == 1

    async def mark_completed(self, job_id: str) -> bool:
        statement = (
            update(NotificationJob)
            .where(
                col(NotificationJob.id) == job_id,
                col(NotificationJob.status) == JobStatus.PROCESSING.value,
            )
            .values(
                status=transition(JobStatus.PROCESSING, JobStatus.COMPLETED).value,
                processed_at=self.now(),
            )
            .execution_options(synchronize_session=False)
        )
        async with get_session(self._session_maker) as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                logger.info(f"Job {job_id} is no longer processing; completion not recorded")
                return False
            return True

    async def mark_failed(self, job_id: str, error: str) -> Optional[JobStatus]:
        """Record a failed attempt.

        The job returns to pending while attempts remain, otherwise it fails
        permanently. Returns the new status, or None if the job was not
        processing.
        """
        async with get_session(self._session_maker) as session:
            job = await session.get(NotificationJob, job_id)
            if job is None or job.status != JobStatus.PROCESSING.value:
                logger.info(f"Job {job_id} is no longer processing; failure not recorded")
                return None

            new_status = transition(JobStatus.PROCESSING, status_after_failure(job.attempts, job.max_attempts))
            values: Dict[str, Any] = {"status": new_status.value, "error": error}
            if is_terminal(new_status):
                values["processed_at"] = self.now()

            result = await session.execute(
                update(NotificationJob)
                .where(
                    col(NotificationJob.id) == job_id,
                    col(NotificationJob.status) == JobStatus.PROCESSING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                return None

        if new_status == JobStatus.FAILED:
            logger.error(f"Job {job_id} failed permanently after {job.attempts} attempts: {error}")
        else:
            logger.warning(f"Job {job_id} failed, will retry. Attempt {job.attempts}/{job.max_attempts}: {error}")
        return new_status

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a pending or processing job. Returns whether anything changed."""
        statement = (
            update(NotificationJob)
            .where(
                col(NotificationJob.id) == job_id,
                col(NotificationJob.status).in_([status.value for status in CANCELLABLE_STATUSES]),
            )
            .values(status=JobStatus.CANCELLED.value, processed_at=self.now())
            .execution_options(synchronize_session=False)
        )
        async with get_session(self._session_maker) as session:
            result = await session.execute(statement)
            cancelled = result.rowcount == 1
        if cancelled:
            logger.info(f"Cancelled notification job {job_id}")
        return cancelled

    async def get_stats(self) -> JobQueueStats:
        statement = select(NotificationJob.status, func.count()).group_by(NotificationJob.status)
        async with get_session(self._session_maker, read_only=True) as session:
            rows = (await session.execute(statement)).all()

        counts = {status.value: 0 for status in JobStatus}
        for status, count in rows:
            if status in counts:
                counts[status] = count
        return JobQueueStats(**counts, total=sum(counts.values()))

    async def list_jobs(
        self,
        status: Optional[str] = None,
        created_by: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[NotificationJob], int]:
        """List jobs newest first, with the total matching count."""
        conditions = []
        if status:
            conditions.append(col(NotificationJob.status) == JobStatus(status).value)
        if created_by:
            conditions.append(col(NotificationJob.created_by) == created_by)

        count_statement = select(func.count()).select_from(NotificationJob).where(*conditions)
        statement = (
            select(NotificationJob)
            .where(*conditions)
            .order_by(col(NotificationJob.created_at).desc(), col(NotificationJob.id).desc())
            .limit(limit)
            .offset(offset)
        )
        async with get_session(self._session_maker, read_only=True) as session:
            total = (await session.execute(count_statement)).scalar_one()
            jobs = (await session.execute(statement)).scalars().all()
            return list(jobs), total

    async def count_created_since(self, since: int) -> int:
        statement = select(func.count()).select_from(NotificationJob).where(col(NotificationJob.created_at) >= since)
        async with get_session(self._session_maker, read_only=True) as session:
            return (await session.execute(statement)).scalar_one()

    async def cleanup(self, retention_days: int = 30) -> int:
        """Delete terminal jobs processed more than ``retention_days`` ago."""
        if (
            isinstance(retention_days, bool)
            or not isinstance(retention_days, int)
            or not 0 <= retention_days <= MAX_RETENTION_DAYS
        ):
            raise ValueError(
                f"Invalid retention_days parameter: must be an integer between 0 and {MAX_RETENTION_DAYS}"
            )

        cutoff = self.now() - retention_days * SECONDS_PER_DAY
        statement = (
            delete(NotificationJob)
            .where(
                col(NotificationJob.status).in_([status.value for status in TERMINAL_STATUSES]),
                col(NotificationJob.processed_at) < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        async with get_session(self._session_maker) as session:
            result = await session.execute(statement)
            deleted = result.rowcount

        if deleted > 0:
            logger.info(f"Cleaned up {deleted} notification jobs older than {retention_days} days")
        return deleted

    async def requeue_stale(self, timeout_seconds: int) -> int:
        """Apply the failure rule to jobs stuck in processing longer than ``timeout_seconds``.

        Recovers attempts abandoned by a crash between ``mark_processing`` and
        the outcome write.
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        cutoff = self.now() - timeout_seconds
        statement = select(NotificationJob.id).where(
            col(NotificationJob.status) == JobStatus.PROCESSING.value,
            (col(NotificationJob.started_at) < cutoff) | col(NotificationJob.started_at).is_(None),
        )
        async with get_session(self._session_maker, read_only=True) as session:
            stale_ids = list((await session.execute(statement)).scalars().all())

        recovered = 0
        for job_id in stale_ids:
            if await self.mark_failed(job_id, STALE_ERROR) is not None:
                recovered += 1
        return recovered
