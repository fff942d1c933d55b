"""HWnow — system resource monitor with a configurable dashboard.

FastAPI entry point with lifespan management, module loading, and CORS.
"""

import threading
import webbrowser
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.router import api_router
from .config import get_config
from .database import check_connection, close_engine, create_tables
from .dependencies import (
    get_app_config,
    get_repository,
    get_resource_log_writer,
    get_resource_monitor,
)
from .middleware.error_handler import register_error_handlers
from .middleware.request_id import RequestIDMiddleware
from .utils.cache import TTLCache
from .utils.logging import get_logger, setup_logging

config = get_config()
setup_logging(
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
logger = get_logger("hwnow.main")

# Health endpoint cache (5s TTL)
_health_cache = TTLCache(default_ttl=5.0, max_entries=5)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    cfg = get_app_config()
    logger.info("hwnow_starting", host=cfg.host, port=cfg.port, version=__version__)

    await create_tables(cfg)

    repo = get_repository()
    created = await repo.ensure_default_page(
        cfg.default_user_id, cfg.default_page_id, cfg.default_page_name
    )
    if created:
        logger.info("default_page_seeded", user_id=cfg.default_user_id, page_id=cfg.default_page_id)

    monitor = get_resource_monitor()
    writer = None
    if cfg.resource_log_enabled:
        writer = get_resource_log_writer()
        monitor.set_log_writer(writer)
        await writer.start()
    await monitor.start()

    logger.info("hwnow_started", save_strategy=repo.save_strategy.value)

    yield

    # --- Shutdown ---
    logger.info("hwnow_stopping")
    await monitor.stop()
    if writer is not None:
        await writer.stop()
    await close_engine()
    logger.info("hwnow_stopped")


app = FastAPI(
    title="HWnow",
    description="System resource monitor with a configurable dashboard",
    version=__version__,
    lifespan=lifespan,
)

# Register standard error handlers
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

# Added last so it runs first
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)


@app.get("/")
async def root():
    return {"name": config.app_name, "version": __version__, "status": "operational"}


@app.get("/health")
async def health():
    """Module health and database reachability."""

    async def _compute():
        cfg = get_app_config()
        database_ok = await check_connection(cfg)
        modules = {"resource_monitor": await get_resource_monitor().health_check()}
        if cfg.resource_log_enabled:
            modules["resource_log"] = get_resource_log_writer().get_stats()
        return {
            "status": "healthy" if database_ok else "degraded",
            "version": __version__,
            "database": "ok" if database_ok else "unreachable",
            "modules": modules,
        }

    return await _health_cache.get_or_compute("health", _compute)


def _open_browser(url: str, delay: float = 1.5) -> None:
    timer = threading.Timer(delay, webbrowser.open, args=(url,))
    timer.daemon = True
    timer.start()


def main():
    """Run the HWnow server."""
    if config.ui_auto_open_browser:
        _open_browser(f"http://{config.host}:{config.port}/")
    uvicorn.run(
        "hwnow.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
