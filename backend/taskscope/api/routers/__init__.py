from fastapi import APIRouter

from taskscope.api.routers.reports import router as reports_router
from taskscope.api.routers.tasks import router as tasks_router


api_router = APIRouter()
api_router.include_router(reports_router, prefix="/reports", tags=["reports"])
api_router.include_router(tasks_router, prefix="/tasks", tags=["tasks"])
