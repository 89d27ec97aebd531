"""Notification job queue schemas."""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class JobStatus(str, Enum):
    """Notification job status states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class NotificationAction(BaseModel):
    action: str
    title: str
    icon: Optional[str] = None


class NotificationJobCreate(BaseModel):
    """Enqueue request for a scheduled notification."""

    title: str = Field(min_length=1, max_length=100)
    body: str = Field(min_length=1, max_length=300)
    icon: Optional[str] = None
    badge: Optional[str] = None
    image: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    actions: Optional[List[NotificationAction]] = Field(default=None, max_length=3)
    tag: Optional[str] = None
    require_interaction: bool = False
    silent: bool = False
    vibrate: Optional[List[int]] = Field(default=None, max_length=31)
    user_ids: Optional[List[str]] = Field(default=None, max_length=1000)
    all_users: bool = False
    scheduled_time: datetime
    created_by: str = "system"
    max_attempts: Optional[int] = Field(default=None, ge=1, le=10)

    @field_validator("scheduled_time")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def check_targeting(self) -> "NotificationJobCreate":
        if self.all_users and self.user_ids:
            raise ValueError("Specify either user_ids or all_users, not both")
        if not self.all_users and not self.user_ids:
            raise ValueError("Specify user_ids or set all_users=true")
        return self

    @property
    def scheduled_timestamp(self) -> int:
        return math.ceil(self.scheduled_time.timestamp())


class NotificationJobResponse(BaseModel):
    id: str
    title: str
    body: str
    icon: Optional[str] = None
    badge: Optional[str] = None
    image: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    actions: Optional[List[Dict[str, Any]]] = None
    tag: Optional[str] = None
    require_interaction: bool = False
    silent: bool = False
    vibrate: Optional[List[int]] = None
    user_ids: Optional[List[str]] = None
    all_users: bool = False
    scheduled_time: int
    created_at: int
    created_by: str
    attempts: int
    max_attempts: int
    status: JobStatus
    error: Optional[str] = None
    started_at: Optional[int] = None
    processed_at: Optional[int] = None


class NotificationJobList(BaseModel):
    object: str = "list"
    data: List[NotificationJobResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class EnqueueResponse(BaseModel):
    id: str
    scheduled_time: int


class JobQueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    total: int = 0


class ProcessorStatus(BaseModel):
    running: bool
    busy: bool
    idle_ticks: int
    interval: float
    last_processed_at: Optional[int] = None


class CancelJobsRequest(BaseModel):
    job_ids: List[str] = Field(min_length=1, max_length=50)


class CancelResult(BaseModel):
    id: str
    cancelled: bool


class CancelJobsResponse(BaseModel):
    cancelled: int
    results: List[CancelResult]


class CleanupResponse(BaseModel):
    deleted: int
    retention_days: int


class JanitorRunResponse(BaseModel):
    requeued: int
    deleted: int
