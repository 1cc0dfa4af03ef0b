from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class ReportRole:
    RECEPTION = "reception"
    DOCTOR = "doctor"
    ADMIN = "admin"

    ALL = [RECEPTION, DOCTOR, ADMIN]


class PatientReport(Base, TimestampMixin):
    """
    One clinical encounter. A reception intake and the doctor's completed
    report are two separate rows linked only by patient.
    """
    __tablename__ = "patient_reports"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=False, index=True)
    report_number = Column(Integer, nullable=True, unique=True, index=True)

    # Vitals
    hemoglobin = Column(Float, nullable=True)
    wbc = Column(Integer, nullable=True)
    platelets = Column(Integer, nullable=True)
    blood_pressure = Column(String(20), nullable=True)
    temperature = Column(Float, nullable=True)
    weight = Column(Float, nullable=True)

    clinical_complaint = Column(Text, nullable=True)
    medical_history = Column(Text, nullable=True)
    observations = Column(Text, nullable=True)
    recommendations = Column(Text, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_by_role = Column(String(20), nullable=True)
    report_date = Column(DateTime, default=datetime.utcnow)
    reception_completed_at = Column(DateTime, nullable=True)
    doctor_completed_at = Column(DateTime, nullable=True)

    patient = relationship("Patient", back_populates="reports")
    prescriptions = relationship("PrescribedMedicine", back_populates="report", cascade="all, delete-orphan")


class PrescribedMedicine(Base, TimestampMixin):
    """Prescription intent; dispensing is recorded separately as usage."""
    __tablename__ = "medicine_prescriptions"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_report_id = Column(String, ForeignKey("patient_reports.id"), nullable=True, index=True)
    medicine_id = Column(String, ForeignKey("medicines.id"), nullable=True, index=True)
    quantity = Column(Integer, nullable=False)
    morning = Column(Boolean, default=False)
    afternoon = Column(Boolean, default=False)
    evening = Column(Boolean, default=False)
    night = Column(Boolean, default=False)

    report = relationship("PatientReport", back_populates="prescriptions")
    medicine = relationship("Medicine")
