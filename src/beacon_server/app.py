import logging
import traceback
from contextlib import asynccontextmanager
from typing import Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from beacon_server.database import check_database_setup, create_all_tables, create_session_maker
from beacon_server.notifications.controller import ProcessorController
from beacon_server.notifications.delivery import HttpDelivery
from beacon_server.notifications.janitor import Janitor
from beacon_server.notifications.processor import DeliveryCallback, NotificationProcessor
from beacon_server.notifications.queue import NotificationQueue
from beacon_server.notifications.store import NotificationJobStore
from beacon_server.router import router
from beacon_server.settings import Settings

logger = logging.getLogger("beacon_server")


def build_notification_queue(
    session_maker: async_sessionmaker[AsyncSession],
    scheduler: AsyncIOScheduler,
    deliver: DeliveryCallback,
    settings: Settings,
) -> NotificationQueue:
    store = NotificationJobStore(session_maker)
    processor = NotificationProcessor(store, deliver, batch_size=settings.processor_batch_size)
    controller = ProcessorController(
        processor,
        scheduler,
        interval=settings.processor_interval,
        idle_stop_ticks=settings.processor_idle_stop_ticks,
        start_on_demand=settings.processor_start_on_demand,
    )
    janitor = Janitor(
        store,
        scheduler,
        retention_days=settings.janitor_retention_days,
        interval=settings.janitor_interval,
        stale_timeout=settings.stale_processing_timeout,
    )
    return NotificationQueue(store, controller, janitor, default_max_attempts=settings.default_max_attempts)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    settings: Settings = app.state.settings
    try:
        app.state.engine, app.state.db_session_maker = create_session_maker(settings.database_url)
        await create_all_tables(app.state.engine)
        if not await check_database_setup(app.state.engine):
            raise RuntimeError("Database is not reachable")
    except Exception as e:
        logger.warning(f"Failed to create database session: {e}")
        raise

    delivery: Optional[HttpDelivery] = None
    deliver = app.state.deliver
    if deliver is None:
        delivery = HttpDelivery(settings.delivery_url, timeout=settings.delivery_timeout)
        deliver = delivery
    logger.info(f"Delivering notifications to {settings.delivery_url}")

    scheduler = AsyncIOScheduler()
    queue = build_notification_queue(app.state.db_session_maker, scheduler, deliver, settings)
    app.state.scheduler = scheduler
    app.state.notification_queue = queue

    scheduler.start()
    await queue.janitor.sweep()
    queue.janitor.start()
    if settings.processor_autostart:
        queue.controller.start()

    yield

    scheduler.shutdown(wait=False)
    if delivery is not None:
        await delivery.aclose()
    await app.state.engine.dispose()
    logger.info("Application shutdown completed")


def create_app(settings: Optional[Settings] = None, deliver: Optional[DeliveryCallback] = None) -> FastAPI:
    app = FastAPI(
        title="Beacon",
        description="Persistent notification job queue",
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()
    app.state.deliver = deliver

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, e: HTTPException) -> JSONResponse:
        logger.error(f"HTTP {e.status_code}: {e.detail} - {request.method} {request.url}")
        return JSONResponse(
            status_code=e.status_code,
            content={"detail": e.detail},
        )

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, e: ValidationError) -> JSONResponse:
        logger.error(f"Validation error on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": e.errors()},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, e: ValueError) -> JSONResponse:
        logger.error(f"ValueError on {request.method} {request.url}: {e}")
        return JSONResponse(
            status_code=400,
            content={"detail": str(e)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, e: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception on {request.method} {request.url}:")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error": str(e)},
        )

    app.include_router(router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    return app
