from datetime import datetime
from sqlalchemy import Column, String, Integer, Text, DateTime
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class PatientCategory:
    PAID = "Paid"
    FREE = "Free"
    THALASSEMIC = "Thalassemic"

    ALL = [PAID, FREE, THALASSEMIC]


class Patient(Base, TimestampMixin):
    __tablename__ = "patients"

    id = Column(String, primary_key=True, default=generate_uuid)
    # Human-facing sequential number shown on cards and printouts
    patient_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False, index=True)
    age = Column(Integer, nullable=False)
    gender = Column(String(20), nullable=False)
    phone_number = Column(String(30), nullable=True)
    address = Column(Text, nullable=True)
    category = Column(String(30), nullable=True)
    description = Column(Text, nullable=True)
    registration_date = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(100), nullable=True)

    reports = relationship("PatientReport", back_populates="patient", order_by="PatientReport.created_at")
