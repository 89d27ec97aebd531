import secrets
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel

from beacon_server.schemas.notifications import JobStatus

JOB_ID_PREFIX = "notif"


def generate_job_id() -> str:
    """Time-based id with a random suffix, e.g. ``notif_1700000000000_k3j9x0a2b``."""
    return f"{JOB_ID_PREFIX}_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


class NotificationJob(SQLModel, table=True):
    """A scheduled push notification with its own delivery retry budget."""

    __tablename__ = "notification_jobs"
    __table_args__ = (
        Index("ix_notification_jobs_status_scheduled_time", "status", "scheduled_time"),
        Index("ix_notification_jobs_created_by", "created_by"),
        Index("ix_notification_jobs_created_at", "created_at"),
    )

    id: str = Field(default_factory=generate_job_id, primary_key=True)

    # Payload, opaque to the scheduler
    title: str
    body: str
    icon: Optional[str] = Field(default=None)
    badge: Optional[str] = Field(default=None)
    image: Optional[str] = Field(default=None)
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))
    actions: Optional[List[Dict[str, Any]]] = Field(
        default=None, sa_column=Column(JSON(none_as_null=True), nullable=True)
    )
    tag: Optional[str] = Field(default=None)
    require_interaction: bool = Field(default=False)
    silent: bool = Field(default=False)
    vibrate: Optional[List[int]] = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))

    # Targeting
    user_ids: Optional[List[str]] = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))
    all_users: bool = Field(default=False)

    # Scheduling
    scheduled_time: int
    created_at: int = Field(default_factory=lambda: int(time.time()))
    created_by: str

    # Lifecycle
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    status: str = Field(default=JobStatus.PENDING.value)
    error: Optional[str] = Field(default=None)
    started_at: Optional[int] = Field(default=None)
    processed_at: Optional[int] = Field(default=None)

    def delivery_payload(self) -> Dict[str, Any]:
        """Payload handed to the push sender, in its camelCase wire format."""
        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon,
            "badge": self.badge,
            "image": self.image,
            "data": self.data,
            "actions": self.actions,
            "tag": self.tag,
            "requireInteraction": self.require_interaction,
            "silent": self.silent,
            "vibrate": self.vibrate,
            "userIds": self.user_ids,
            "allUsers": self.all_users,
        }
