from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from .base import Base, TimestampMixin, generate_uuid


class UsageRecord(Base, TimestampMixin):
    """One dispensing of a medicine to a patient."""
    __tablename__ = "medicine_usage"

    id = Column(String, primary_key=True, default=generate_uuid)
    patient_id = Column(String, ForeignKey("patients.id"), nullable=True, index=True)
    medicine_id = Column(String, ForeignKey("medicines.id"), nullable=True, index=True)
    quantity_used = Column(Integer, nullable=False)
    usage_date = Column(DateTime, default=datetime.utcnow, index=True)
    created_by = Column(String(100), nullable=True)
