from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Callable, Generator, List, Optional

import pytest
import pytest_asyncio
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beacon_server.app import create_app
from beacon_server.database import create_all_tables, create_session_maker
from beacon_server.models import NotificationJob
from beacon_server.notifications.controller import ProcessorController
from beacon_server.notifications.janitor import Janitor
from beacon_server.notifications.processor import NotificationProcessor
from beacon_server.notifications.queue import NotificationQueue
from beacon_server.notifications.store import NotificationJobStore
from beacon_server.schemas.notifications import NotificationJobCreate
from beacon_server.settings import Settings

START = 1_700_000_000


class FakeClock:
    def __init__(self, now: int = START) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class RecordingDelivery:
    """Delivery callback that records job ids and optionally raises."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.delivered: List[str] = []
        self.error = error

    async def __call__(self, job: NotificationJob) -> None:
        self.delivered.append(job.id)
        if self.error is not None:
            raise self.error


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def session_maker() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine, maker = create_session_maker("sqlite+aiosqlite://")
    await create_all_tables(engine)
    yield maker
    await engine.dispose()


@pytest.fixture
def store(session_maker: async_sessionmaker[AsyncSession], clock: FakeClock) -> NotificationJobStore:
    return NotificationJobStore(session_maker, clock=clock)


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def scheduler() -> AsyncIOScheduler:
    # Never started: jobs stay registered but never fire, so ticks are driven by hand.
    return AsyncIOScheduler()


@pytest.fixture
def processor(store: NotificationJobStore, delivery: RecordingDelivery) -> NotificationProcessor:
    return NotificationProcessor(store, delivery, batch_size=5)


@pytest.fixture
def controller(processor: NotificationProcessor, scheduler: AsyncIOScheduler) -> ProcessorController:
    return ProcessorController(processor, scheduler, interval=30, idle_stop_ticks=40, start_on_demand=True)


@pytest.fixture
def janitor(store: NotificationJobStore, scheduler: AsyncIOScheduler) -> Janitor:
    return Janitor(store, scheduler, retention_days=30, interval=86_400, stale_timeout=600)


@pytest.fixture
def queue(store: NotificationJobStore, controller: ProcessorController, janitor: Janitor) -> NotificationQueue:
    return NotificationQueue(store, controller, janitor)


@pytest.fixture
def make_spec(clock: FakeClock) -> Callable[..., NotificationJobCreate]:
    def _make(delay: float = 0, **overrides: Any) -> NotificationJobCreate:
        fields: dict[str, Any] = {
            "title": "Weekly digest",
            "body": "Your competitors shipped 3 updates this week",
            "user_ids": ["user_1"],
            "scheduled_time": datetime.fromtimestamp(clock.now + delay, tz=timezone.utc),
            "created_by": "admin_1",
        }
        fields.update(overrides)
        return NotificationJobCreate(**fields)

    return _make


def _test_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {"database_url": "sqlite+aiosqlite://", "processor_autostart": False}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def client_factory() -> Callable[..., TestClient]:
    def _make(**overrides: Any) -> TestClient:
        return TestClient(create_app(_test_settings(**overrides), deliver=RecordingDelivery()))

    return _make


@pytest.fixture
def client(client_factory: Callable[..., TestClient]) -> Generator[TestClient, None, None]:
    with client_factory() as test_client:
        yield test_client
