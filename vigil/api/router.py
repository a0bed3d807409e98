"""Master API router — includes all sub-routers."""

from fastapi import APIRouter

from .. import __version__
from ..bridge.contracts import HealthResponse
from ..dependencies import get_file_integrity
from .routes.maintenance import router as maintenance_router
from .routes.scans import router as scans_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(scans_router)
api_router.include_router(maintenance_router)


@api_router.get("/health", response_model=HealthResponse, tags=["health"])
async def health():
    check = await get_file_integrity().health_check()
    return {
        "status": "ok",
        "version": __version__,
        "modules": {"file_integrity": check},
    }
