"""Vigil — file integrity scanning service.

FastAPI entry point with lifespan management for the scan and maintenance
modules. The API is meant for in-process or loopback use.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request

from . import __version__
from .api.router import api_router
from .database import close_engine, create_tables
from .dependencies import (
    get_app_config,
    get_file_integrity,
    get_maintenance_sweeper,
    reset_singletons,
)
from .middleware.error_handler import register_error_handlers
from .utils.logging import get_logger, setup_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    config = get_app_config()
    setup_logging(
        debug=config.debug,
        log_dir=config.log_dir,
        log_max_bytes=config.log_max_bytes,
        log_backup_count=config.log_backup_count,
    )
    logger.info("vigil_starting", host=config.host, port=config.port, scan_root=config.scan_root)

    if config.secret_key == "CHANGE_ME_IN_PRODUCTION":
        if not config.debug:
            raise RuntimeError(
                "INSECURE_SECRET_KEY — the content cache key is derived from secret_key. "
                "Set a strong, unique SECRET_KEY in .env before deploying."
            )
        logger.warning("insecure_secret_key", detail="default secret_key in debug mode")

    await create_tables(config)

    modules = [get_file_integrity(), get_maintenance_sweeper()]
    for module in modules:
        await module.start()

    yield

    # --- Shutdown ---
    for module in reversed(modules):
        try:
            await asyncio.wait_for(module.stop(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.error("module_stop_timeout", module=module.name)
    await close_engine()
    reset_singletons()
    logger.info("vigil_stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="VIGIL",
        description="File integrity scanning, diffing and retention engine",
        version=__version__,
        lifespan=lifespan,
    )
    register_error_handlers(app)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(api_router)
    return app


app = create_app()


def main() -> None:
    config = get_app_config()
    uvicorn.run("vigil.main:app", host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    main()
