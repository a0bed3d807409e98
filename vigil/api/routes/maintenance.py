"""Maintenance routes — on-demand retention sweeps and cache housekeeping."""

from fastapi import APIRouter, HTTPException

from ...bridge.contracts import (
    CacheCleanupResponse,
    CacheStatsResponse,
    PruneRequest,
    PruneResponse,
)
from ...dependencies import get_file_integrity, get_retention_manager

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/prune", response_model=PruneResponse)
async def prune(body: PruneRequest = PruneRequest()):
    """Run one tiered retention sweep; omitted fields fall back to settings."""
    try:
        return await get_retention_manager().prune_tiered(
            tier2_days=body.tier2_days,
            tier3_days=body.tier3_days,
            keep_baseline=body.keep_baseline,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/cache-cleanup", response_model=CacheCleanupResponse)
async def cache_cleanup():
    removed = await get_file_integrity().content_cache.cleanup_expired()
    return {"expired_entries_removed": removed}


@router.get("/cache", response_model=CacheStatsResponse)
async def cache_stats():
    return await get_file_integrity().content_cache.statistics()
