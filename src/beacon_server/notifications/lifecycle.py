"""Notification job lifecycle.

pending -> processing -> completed | pending (retry) | failed
pending | processing -> cancelled

Retries use a fixed attempt budget with no backoff: a failed job goes back to
``pending`` and is picked up again on a later tick until ``attempts`` reaches
``max_attempts``.
"""

from typing import Dict, FrozenSet, Tuple

from sqlalchemy import ColumnElement
from sqlmodel import col

from beacon_server.models import NotificationJob
from beacon_server.schemas.notifications import JobStatus

TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})
CANCELLABLE_STATUSES: FrozenSet[JobStatus] = frozenset({JobStatus.PENDING, JobStatus.PROCESSING})

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.CANCELLED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.COMPLETED, JobStatus.PENDING, JobStatus.FAILED, JobStatus.CANCELLED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


class InvalidTransitionError(ValueError):
    def __init__(self, current: JobStatus, target: JobStatus) -> None:
        super().__init__(f"Cannot move job from {current.value} to {target.value}")
        self.current = current
        self.target = target


def is_terminal(status: JobStatus | str) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def can_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    return JobStatus(target) in TRANSITIONS[JobStatus(current)]


def transition(current: JobStatus | str, target: JobStatus | str) -> JobStatus:
    """Validate a status change and return the new status."""
    current, target = JobStatus(current), JobStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    return target


def status_after_failure(attempts: int, max_attempts: int) -> JobStatus:
    """Status for a processing job whose delivery attempt just failed.

    ``attempts`` already includes the failed attempt.
    """
    if attempts >= max_attempts:
        return JobStatus.FAILED
    return JobStatus.PENDING


def eligible_conditions(now: int) -> Tuple[ColumnElement[bool], ...]:
    """Conditions a job must meet to be claimed by a tick running at ``now``."""
    return (
        col(NotificationJob.status) == JobStatus.PENDING.value,
        col(NotificationJob.scheduled_time) <= now,
        col(NotificationJob.attempts) < col(NotificationJob.max_attempts),
    )
