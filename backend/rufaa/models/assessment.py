from sqlalchemy import Column, String, Text
from .base import Base, SyncMixin


class AssessmentForm:
    GENERAL = "A"     # BMI <= 25
    OVERWEIGHT = "B"  # BMI > 25


class GeneralAssessment(Base, SyncMixin):
    __tablename__ = "general_assessments"

    patient_id = Column(String(50), nullable=False, index=True)
    visit_date = Column(String(20), nullable=False)
    general_health = Column(String(20), nullable=False)  # good, poor
    on_diet_to_lose_weight = Column(String(10), nullable=False)  # yes, no
    comments = Column(Text, nullable=False, default="")
    form_type = Column(String(1), nullable=False, default=AssessmentForm.GENERAL)

    PAYLOAD_FIELDS = ("visit_date", "general_health", "on_diet_to_lose_weight", "comments", "patient_id", "form_type")


class OverweightAssessment(Base, SyncMixin):
    __tablename__ = "overweight_assessments"

    patient_id = Column(String(50), nullable=False, index=True)
    visit_date = Column(String(20), nullable=False)
    general_health = Column(String(20), nullable=False)
    currently_using_drugs = Column(String(10), nullable=False)  # yes, no
    comments = Column(Text, nullable=False, default="")
    form_type = Column(String(1), nullable=False, default=AssessmentForm.OVERWEIGHT)

    PAYLOAD_FIELDS = ("visit_date", "general_health", "currently_using_drugs", "comments", "patient_id", "form_type")
