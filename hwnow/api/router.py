"""Master API router — includes all sub-routers."""

from fastapi import APIRouter

from .routes.config import router as config_router
from .routes.gpu import router as gpu_router
from .routes.metrics import router as metrics_router
from .routes.pages import router as pages_router
from .routes.widgets import router as widgets_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(pages_router)
api_router.include_router(widgets_router)
api_router.include_router(metrics_router)
api_router.include_router(gpu_router)
api_router.include_router(config_router)
