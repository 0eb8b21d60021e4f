"""
Entity types known to the sync engine and how each maps onto the remote API.

Each binding names the endpoint, builds the request body from a local record's
payload and says which response ``data`` keys carry the server identifiers.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict

from ..models.assessment import AssessmentForm, GeneralAssessment, OverweightAssessment
from ..models.base import SyncMixin
from ..models.patient import Patient
from ..models.vitals import Vitals


class EntityType(str, Enum):
    PATIENT = "patient"
    VITALS = "vitals"
    GENERAL_ASSESSMENT = "general_assessment"
    OVERWEIGHT_ASSESSMENT = "overweight_assessment"


class Endpoints:
    PATIENTS_REGISTER = "patients/register"
    VITALS_ADD = "vital/add"
    VISITS_ADD = "visits/add"


# ── Request schemas ──────────────────────────────────────────────────────────

class PatientRegistrationRequest(BaseModel):
    firstname: str
    lastname: str
    unique: str
    dob: str
    gender: str
    reg_date: str


class VitalsRequest(BaseModel):
    visit_date: str
    height: str
    weight: str
    bmi: str
    patient_id: str


class GeneralAssessmentRequest(BaseModel):
    visit_date: str
    general_health: str
    on_diet_to_lose_weight: str
    comments: str
    patient_id: str
    form_type: str = AssessmentForm.GENERAL


class OverweightAssessmentRequest(BaseModel):
    visit_date: str
    general_health: str
    currently_using_drugs: str
    comments: str
    patient_id: str
    form_type: str = AssessmentForm.OVERWEIGHT


# ── Response schemas ─────────────────────────────────────────────────────────

class SyncResponse(BaseModel):
    """Envelope every endpoint answers with: ``{success, message, data}``."""
    model_config = ConfigDict(extra="ignore")

    success: bool
    message: str = ""
    code: Optional[int] = None
    data: Optional[Dict[str, Any]] = None


class ValidationErrorResponse(BaseModel):
    """Body of a 4xx validation failure: ``{message, errors: {field: [..]}}``."""
    model_config = ConfigDict(extra="ignore")

    message: str
    errors: Dict[str, List[str]] = {}

    def summary(self) -> str:
        details = "; ".join(
            f"{field}: {', '.join(msgs)}" for field, msgs in self.errors.items() if msgs
        )
        return f"{self.message} ({details})" if details else self.message


# ── Bindings ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EntityBinding:
    entity_type: EntityType
    model: Type[SyncMixin]
    endpoint: str
    request_schema: Type[BaseModel]
    server_id_key: str
    server_ref_key: Optional[str] = None
    field_aliases: Optional[Dict[str, str]] = None  # local column -> request field

    def build_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        aliases = self.field_aliases or {}
        body = {aliases.get(key, key): value for key, value in payload.items()}
        fields = self.request_schema.model_fields
        return self.request_schema(**{k: v for k, v in body.items() if k in fields}).model_dump()

    def extract_ids(self, data: Optional[Dict[str, Any]]) -> Optional[tuple]:
        """Return ``(server_id, server_ref)`` or None when the id is missing."""
        if not data or data.get(self.server_id_key) is None:
            return None
        server_ref = data.get(self.server_ref_key) if self.server_ref_key else None
        return str(data[self.server_id_key]), (str(server_ref) if server_ref is not None else None)


ENTITY_BINDINGS: Dict[EntityType, EntityBinding] = {
    EntityType.PATIENT: EntityBinding(
        entity_type=EntityType.PATIENT,
        model=Patient,
        endpoint=Endpoints.PATIENTS_REGISTER,
        request_schema=PatientRegistrationRequest,
        server_id_key="proceed",
        field_aliases={"unique_id": "unique"},
    ),
    EntityType.VITALS: EntityBinding(
        entity_type=EntityType.VITALS,
        model=Vitals,
        endpoint=Endpoints.VITALS_ADD,
        request_schema=VitalsRequest,
        server_id_key="id",
    ),
    EntityType.GENERAL_ASSESSMENT: EntityBinding(
        entity_type=EntityType.GENERAL_ASSESSMENT,
        model=GeneralAssessment,
        endpoint=Endpoints.VISITS_ADD,
        request_schema=GeneralAssessmentRequest,
        server_id_key="id",
        server_ref_key="visit_id",
    ),
    EntityType.OVERWEIGHT_ASSESSMENT: EntityBinding(
        entity_type=EntityType.OVERWEIGHT_ASSESSMENT,
        model=OverweightAssessment,
        endpoint=Endpoints.VISITS_ADD,
        request_schema=OverweightAssessmentRequest,
        server_id_key="id",
        server_ref_key="visit_id",
    ),
}
