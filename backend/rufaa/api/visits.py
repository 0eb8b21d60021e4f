"""Visit capture API: vitals with BMI routing, and the two assessment forms."""
from fastapi import APIRouter, Depends, HTTPException, status
from typing import Literal, Optional
from pydantic import BaseModel, Field
from datetime import datetime

from ..services.bmi import calculate_bmi
from ..services.entities import EntityType
from ..services.offline_sync import OfflineSyncService
from ..services.record_store import SyncableRecord
from .sync import get_sync_service

router = APIRouter(tags=["visits"])

YesNo = Literal["yes", "no"]
Health = Literal["good", "poor"]


class VitalsCreate(BaseModel):
    patient_id: str = Field(min_length=1)
    visit_date: str = Field(min_length=1)
    height: float = Field(gt=0, le=300, description="Height in cm")
    weight: float = Field(gt=0, le=500, description="Weight in kg")


class VitalsResponse(BaseModel):
    local_id: int
    patient_id: str
    visit_date: str
    height: str
    weight: str
    bmi: str
    bmi_category: str
    assessment_route: str
    sync_state: str
    created_at: datetime


class GeneralAssessmentCreate(BaseModel):
    patient_id: str = Field(min_length=1)
    visit_date: str = Field(min_length=1)
    general_health: Health
    on_diet_to_lose_weight: YesNo
    comments: str = ""


class OverweightAssessmentCreate(BaseModel):
    patient_id: str = Field(min_length=1)
    visit_date: str = Field(min_length=1)
    general_health: Health
    currently_using_drugs: YesNo
    comments: str = ""


class AssessmentResponse(BaseModel):
    local_id: int
    patient_id: str
    visit_date: str
    form_type: str
    sync_state: str
    sync_error: Optional[str]
    created_at: datetime


def _require_patient(service: OfflineSyncService, patient_id: str) -> None:
    if not service.store(EntityType.PATIENT).find_by("unique_id", patient_id):
        raise HTTPException(status_code=404, detail="Patient not found")


def _assessment_response(record: SyncableRecord) -> AssessmentResponse:
    return AssessmentResponse(
        local_id=record.local_id,
        patient_id=record.payload["patient_id"],
        visit_date=record.payload["visit_date"],
        form_type=record.payload["form_type"],
        sync_state=record.sync_state,
        sync_error=record.sync_error,
        created_at=record.created_at,
    )


@router.post("/vitals/", response_model=VitalsResponse, status_code=status.HTTP_201_CREATED)
def create_vitals(
    vitals_in: VitalsCreate,
    service: OfflineSyncService = Depends(get_sync_service),
):
    """Save vitals locally and tell the client which assessment form comes next."""
    _require_patient(service, vitals_in.patient_id)
    bmi = calculate_bmi(vitals_in.height, vitals_in.weight)
    record = service.store(EntityType.VITALS).add(
        patient_id=vitals_in.patient_id,
        visit_date=vitals_in.visit_date,
        height=f"{vitals_in.height:g}",
        weight=f"{vitals_in.weight:g}",
        bmi=f"{bmi.bmi:.2f}",
        bmi_category=bmi.category,
    )
    return VitalsResponse(
        local_id=record.local_id,
        assessment_route=bmi.route,
        sync_state=record.sync_state,
        created_at=record.created_at,
        **record.payload,
    )


@router.post("/assessments/general", response_model=AssessmentResponse, status_code=status.HTTP_201_CREATED)
def create_general_assessment(
    assessment_in: GeneralAssessmentCreate,
    service: OfflineSyncService = Depends(get_sync_service),
):
    """Form A, for BMI <= 25."""
    _require_patient(service, assessment_in.patient_id)
    record = service.store(EntityType.GENERAL_ASSESSMENT).add(**assessment_in.model_dump())
    return _assessment_response(record)


@router.post("/assessments/overweight", response_model=AssessmentResponse, status_code=status.HTTP_201_CREATED)
def create_overweight_assessment(
    assessment_in: OverweightAssessmentCreate,
    service: OfflineSyncService = Depends(get_sync_service),
):
    """Form B, for BMI > 25."""
    _require_patient(service, assessment_in.patient_id)
    record = service.store(EntityType.OVERWEIGHT_ASSESSMENT).add(**assessment_in.model_dump())
    return _assessment_response(record)
