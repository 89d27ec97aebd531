from fastapi import APIRouter

from beacon_server.notifications.router import router as notifications_router

router = APIRouter()
router.include_router(notifications_router)
