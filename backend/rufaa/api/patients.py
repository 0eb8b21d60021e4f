from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from ..services.entities import EntityType
from ..services.offline_sync import OfflineSyncService
from ..services.record_store import SyncableRecord
from .sync import get_sync_service

router = APIRouter(prefix="/patients", tags=["patients"])

SEARCH_COLUMNS = ("firstname", "lastname", "unique_id")


class PatientCreate(BaseModel):
    firstname: str = Field(min_length=1)
    lastname: str = Field(min_length=1)
    unique_id: str = Field(min_length=1)
    dob: str = Field(min_length=1)
    gender: str = Field(min_length=1)
    reg_date: str = Field(min_length=1)


class PatientResponse(BaseModel):
    local_id: int
    firstname: str
    lastname: str
    unique_id: str
    dob: str
    gender: str
    reg_date: str
    sync_state: str
    sync_error: Optional[str]
    server_id: Optional[str]
    created_at: datetime


def _to_response(record: SyncableRecord) -> PatientResponse:
    return PatientResponse(
        local_id=record.local_id,
        sync_state=record.sync_state,
        sync_error=record.sync_error,
        server_id=record.server_id,
        created_at=record.created_at,
        **record.payload,
    )


@router.post("/", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    patient_in: PatientCreate,
    service: OfflineSyncService = Depends(get_sync_service),
):
    """Save a patient locally; the sync engine uploads it later."""
    store = service.store(EntityType.PATIENT)
    unique_id = patient_in.unique_id.strip()
    if store.find_by("unique_id", unique_id):
        raise HTTPException(status_code=400, detail="A patient with this ID already exists")
    fields = patient_in.model_dump()
    fields.update(
        firstname=patient_in.firstname.strip(),
        lastname=patient_in.lastname.strip(),
        unique_id=unique_id,
    )
    return _to_response(store.add(**fields))


@router.get("/search", response_model=List[PatientResponse])
def search_patients(
    q: str,
    service: OfflineSyncService = Depends(get_sync_service),
):
    """Search patients by name or unique ID."""
    store = service.store(EntityType.PATIENT)
    return [_to_response(r) for r in store.search(q, SEARCH_COLUMNS)]


@router.get("/{local_id}", response_model=PatientResponse)
def get_patient(
    local_id: int,
    service: OfflineSyncService = Depends(get_sync_service),
):
    record = service.store(EntityType.PATIENT).get(local_id)
    if not record:
        raise HTTPException(status_code=404, detail="Patient not found")
    return _to_response(record)


@router.get("/", response_model=List[PatientResponse])
def list_patients(
    skip: int = 0,
    limit: int = 50,
    service: OfflineSyncService = Depends(get_sync_service),
):
    return [_to_response(r) for r in service.store(EntityType.PATIENT).list_all(skip, limit)]
