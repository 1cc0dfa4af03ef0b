from .base import Base
from .user import User, UserRole
from .patient import Patient, PatientCategory
from .medicine import Medicine, MedicineCategory, StockEvent, StockType
from .usage import UsageRecord
from .report import PatientReport, PrescribedMedicine, ReportRole
from .audit import AuditLog

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Patient",
    "PatientCategory",
    "Medicine",
    "MedicineCategory",
    "StockEvent",
    "StockType",
    "UsageRecord",
    "PatientReport",
    "PrescribedMedicine",
    "ReportRole",
    "AuditLog",
]
