from beacon_server.models.notification_jobs import NotificationJob, generate_job_id

__all__ = [
    "NotificationJob",
    "generate_job_id",
]
