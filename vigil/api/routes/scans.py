"""Scan routes — trigger, inspect, cancel, baseline and delete scans."""

from fastapi import APIRouter, Query, status

from ...bridge.contracts import (
    DashboardStatsResponse,
    FileRecordListResponse,
    ScanListResponse,
    ScanResultResponse,
    ScanSummaryResponse,
    ScanTriggerRequest,
    ScanTriggerResponse,
)
from ...dependencies import get_file_integrity

router = APIRouter(prefix="/scans", tags=["scans"])


@router.post("", response_model=ScanTriggerResponse)
async def trigger_scan(body: ScanTriggerRequest = ScanTriggerRequest()):
    """Run a scan now, or queue it for the background worker."""
    fi = get_file_integrity()
    if body.background:
        scan_id = await fi.enqueue_scan(body.scan_type)
    else:
        scan_id = await fi.run_scan(body.scan_type, wait=False)
    return {"scan_id": scan_id, "status": await fi.get_scan_status(scan_id)}


@router.get("", response_model=ScanListResponse)
async def list_scans(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=200),
):
    return await get_file_integrity().list_scans(page, per_page)


@router.get("/stats", response_model=DashboardStatsResponse)
async def dashboard_stats():
    return await get_file_integrity().get_dashboard_stats()


@router.get("/{scan_id}", response_model=ScanResultResponse)
async def get_scan(scan_id: int):
    return await get_file_integrity().get_scan(scan_id)


@router.get("/{scan_id}/summary", response_model=ScanSummaryResponse)
async def get_scan_summary(scan_id: int):
    return await get_file_integrity().get_scan_summary(scan_id)


@router.get("/{scan_id}/files", response_model=FileRecordListResponse)
async def get_scan_files(
    scan_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=500),
    status_filter: str = Query("", alias="status"),
):
    """Page through a scan's file records; ``status=all`` hides unchanged files."""
    return await get_file_integrity().get_scan_files(scan_id, page, per_page, status_filter)


@router.post("/{scan_id}/cancel", response_model=ScanResultResponse)
async def cancel_scan(scan_id: int):
    fi = get_file_integrity()
    await fi.cancel_scan(scan_id)
    return await fi.get_scan(scan_id)


@router.post("/{scan_id}/baseline", response_model=ScanResultResponse)
async def mark_baseline(scan_id: int):
    fi = get_file_integrity()
    await fi.mark_baseline(scan_id)
    return await fi.get_scan(scan_id)


@router.delete("/{scan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scan(scan_id: int):
    await get_file_integrity().delete_scan(scan_id)
