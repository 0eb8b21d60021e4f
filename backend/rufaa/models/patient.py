from sqlalchemy import Column, String
from .base import Base, SyncMixin


class Patient(Base, SyncMixin):
    __tablename__ = "patients"

    firstname = Column(String(100), nullable=False)
    lastname = Column(String(100), nullable=False)
    unique_id = Column(String(50), unique=True, nullable=False, index=True)  # clinic-issued patient number
    dob = Column(String(20), nullable=False)
    gender = Column(String(20), nullable=False)
    reg_date = Column(String(20), nullable=False)

    PAYLOAD_FIELDS = ("firstname", "lastname", "unique_id", "dob", "gender", "reg_date")
