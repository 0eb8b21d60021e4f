from sqlalchemy import Column, String
from .base import Base, SyncMixin


class Vitals(Base, SyncMixin):
    __tablename__ = "vitals"

    patient_id = Column(String(50), nullable=False, index=True)  # patient unique id
    visit_date = Column(String(20), nullable=False)
    height = Column(String(20), nullable=False)  # cm
    weight = Column(String(20), nullable=False)  # kg
    bmi = Column(String(20), nullable=False)
    bmi_category = Column(String(20), nullable=False)

    PAYLOAD_FIELDS = ("visit_date", "height", "weight", "bmi", "bmi_category", "patient_id")
