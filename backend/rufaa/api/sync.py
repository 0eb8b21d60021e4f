"""Sync status API: unsynced counts, manual trigger, retention and connectivity reports."""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from typing import Dict

from ..services.connectivity import NetworkTransport
from ..services.offline_sync import OfflineSyncService

router = APIRouter(prefix="/sync", tags=["sync"])


def get_sync_service(request: Request) -> OfflineSyncService:
    service = getattr(request.app.state, "sync_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Sync engine is not initialised")
    return service


class SyncStatusResponse(BaseModel):
    is_connected: bool
    unsynced_count: int
    network_type: str


class UnsyncedCountResponse(BaseModel):
    per_type: Dict[str, int]
    total: int


class ConnectivityReport(BaseModel):
    connected: bool
    transport: NetworkTransport = NetworkTransport.OTHER


@router.get("/status", response_model=SyncStatusResponse)
def sync_status(service: OfflineSyncService = Depends(get_sync_service)):
    """Status indicator data: connectivity and number of records still to upload."""
    return service.get_sync_status().to_dict()


@router.get("/unsynced", response_model=UnsyncedCountResponse)
def unsynced_count(service: OfflineSyncService = Depends(get_sync_service)):
    return service.get_unsynced_count().to_dict()


@router.post("/trigger", status_code=status.HTTP_202_ACCEPTED)
async def trigger_sync(service: OfflineSyncService = Depends(get_sync_service)):
    """Queue a manual sync. A pass that is already running is not interrupted."""
    if not service.trigger_manual_sync():
        raise HTTPException(status_code=409, detail="Sync scheduler is not running")
    return {"queued": True}


@router.post("/purge")
def purge_synced(service: OfflineSyncService = Depends(get_sync_service)):
    """Delete local records the server has already accepted."""
    deleted = service.purge_synced()
    return {"deleted": {t.value: n for t, n in deleted.items()}}


@router.post("/connectivity")
def report_connectivity(
    report: ConnectivityReport,
    service: OfflineSyncService = Depends(get_sync_service),
):
    """Platform network callback bridge: report the device's current network state."""
    changed = service.monitor.report(report.connected, report.transport)
    return {"changed": changed, "state": service.monitor.state.to_dict()}


@router.get("/scheduler")
def scheduler_state(service: OfflineSyncService = Depends(get_sync_service)):
    return {"running": service.scheduler.is_started, **service.scheduler.state.to_dict()}
