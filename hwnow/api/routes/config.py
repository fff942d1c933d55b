"""Client-facing configuration."""

from fastapi import APIRouter, Depends

from ...config import HWnowConfig
from ...dependencies import get_app_config

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/ui")
async def ui_config(config: HWnowConfig = Depends(get_app_config)):
    """UI defaults the dashboard reads once at startup."""
    return {
        "theme": config.ui_theme,
        "autoOpenBrowser": config.ui_auto_open_browser,
        "pollingIntervalMs": int(config.monitoring_interval_seconds * 1000),
        "defaultUserId": config.default_user_id,
        "defaultPageId": config.default_page_id,
        "saveDelayMs": int(config.dashboard_save_delay_seconds * 1000),
        "monitoring": {
            "cpu": config.enable_cpu_monitoring,
            "memory": config.enable_memory_monitoring,
            "disk": config.enable_disk_monitoring,
            "network": config.enable_network_monitoring,
            "gpu": config.enable_gpu_monitoring,
        },
    }
