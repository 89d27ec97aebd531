from typing import Protocol, cast

from fastapi import Request

from beacon_server.notifications.queue import NotificationQueue
from beacon_server.settings import Settings


class HasNotificationQueue(Protocol):
    notification_queue: NotificationQueue


class HasSettings(Protocol):
    settings: Settings


def get_notification_queue(request: Request) -> NotificationQueue:
    state = cast(HasNotificationQueue, request.app.state)
    return state.notification_queue


def get_settings(request: Request) -> Settings:
    state = cast(HasSettings, request.app.state)
    return state.settings
