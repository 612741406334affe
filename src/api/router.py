from fastapi import APIRouter

from src.api.integrations import router as integrations_router
from src.api.notifications import router as notifications_router
from src.api.scheduler import router as scheduler_router
from src.api.tasks import router as tasks_router

api_router = APIRouter()
api_router.include_router(tasks_router)
api_router.include_router(integrations_router)
api_router.include_router(notifications_router)
api_router.include_router(scheduler_router)
