from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
from pydantic import BaseModel, Field
from datetime import datetime
from .deps import get_clinic_service
from ..services.clinic_service import ClinicService, DOCTOR_FIELDS, ReportView
from ..core.security import require_permission
from ..core.permissions import (
    PERM_CREATE_DOCTOR_REPORTS,
    PERM_CREATE_RECEPTION_REPORTS,
    PERM_VIEW_REPORTS,
)

router = APIRouter(prefix="/reports", tags=["reports"])


class Vitals(BaseModel):
    hemoglobin: Optional[float] = None
    wbc: Optional[int] = None
    platelets: Optional[int] = None
    blood_pressure: Optional[str] = None
    temperature: Optional[float] = None
    weight: Optional[float] = None
    clinical_complaint: Optional[str] = None


class ReceptionReportCreate(Vitals):
    patient_id: str


class PrescriptionIn(BaseModel):
    medicine_id: str
    quantity: int = Field(..., gt=0)
    morning: bool = False
    afternoon: bool = False
    evening: bool = False
    night: bool = False


class DoctorReportCreate(Vitals):
    patient_id: str
    medical_history: Optional[str] = None
    observations: Optional[str] = None
    recommendations: Optional[str] = None
    prescriptions: List[PrescriptionIn]
    dispense: bool = True


class PrescriptionResponse(BaseModel):
    id: str
    medicine_id: Optional[str]
    medicine_name: Optional[str]
    quantity: int
    dosage_times: List[str]


class ReportPatient(BaseModel):
    id: str
    patient_id: int
    name: str
    age: Optional[int]
    gender: Optional[str]
    phone_number: Optional[str]
    category: Optional[str]


class ReportResponse(Vitals):
    id: str
    report_number: Optional[int]
    patient_id: str
    medical_history: Optional[str] = None
    observations: Optional[str] = None
    recommendations: Optional[str] = None
    created_by: Optional[str]
    created_by_role: Optional[str]
    report_date: Optional[datetime]
    reception_completed_at: Optional[datetime]
    doctor_completed_at: Optional[datetime]
    patient: Optional[ReportPatient]
    prescriptions: List[PrescriptionResponse]


def _serialize(view: ReportView) -> dict:
    report = view.report
    data = {name: getattr(report, name) for name in DOCTOR_FIELDS}
    data.update(
        id=report.id,
        report_number=report.report_number,
        patient_id=report.patient_id,
        created_by=report.created_by,
        created_by_role=report.created_by_role,
        report_date=report.report_date,
        reception_completed_at=report.reception_completed_at,
        doctor_completed_at=report.doctor_completed_at,
        patient=None,
        prescriptions=[
            {
                "id": p.id,
                "medicine_id": p.medicine_id,
                "medicine_name": p.medicine_name,
                "quantity": p.quantity,
                "dosage_times": p.dosage_times,
            }
            for p in view.prescriptions
        ],
    )
    if view.patient is not None:
        p = view.patient
        data["patient"] = {
            "id": p.id,
            "patient_id": p.patient_id,
            "name": p.name,
            "age": p.age,
            "gender": p.gender,
            "phone_number": p.phone_number,
            "category": p.category,
        }
    return data


@router.post("/", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_doctor_report(
    report_in: DoctorReportCreate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_CREATE_DOCTOR_REPORTS)),
):
    """
    Save a doctor's report with its prescriptions. By default every
    prescription is also dispensed; stock is checked for all lines first.
    """
    details = report_in.model_dump(exclude={"patient_id", "prescriptions", "dispense"})
    try:
        view = service.create_patient_report(
            report_in.patient_id,
            details,
            [p.model_dump() for p in report_in.prescriptions],
            created_by=current_user.id,
            created_by_role=current_user.role,
            dispense=report_in.dispense,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _serialize(view)


@router.post("/reception", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
def create_reception_report(
    report_in: ReceptionReportCreate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_CREATE_RECEPTION_REPORTS)),
):
    details = report_in.model_dump(exclude={"patient_id"})
    return _serialize(service.create_reception_report(report_in.patient_id, details, created_by=current_user.id))


@router.get("/reception", response_model=List[ReportResponse])
def search_reception_reports(
    q: str = "",
    limit: int = Query(50, ge=1, le=500),
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_REPORTS)),
):
    """Reception intakes, newest first, matched on report number or patient."""
    return [_serialize(v) for v in service.search_reception_reports(q, limit=limit)]


@router.get("/reception/{report_id}", response_model=ReportResponse)
def get_reception_report(
    report_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_REPORTS)),
):
    return _serialize(service.get_reception_report(report_id))


@router.get("/latest", response_model=List[ReportResponse])
def latest_reports(
    limit: int = Query(50, ge=1, le=500),
    role: Optional[str] = None,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_REPORTS)),
):
    return [_serialize(v) for v in service.latest_reports(limit=limit, role=role)]


@router.get("/patient/{patient_id}", response_model=List[ReportResponse])
def list_patient_reports(
    patient_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_REPORTS)),
):
    """Every report for one patient, newest first, prescriptions included."""
    return [_serialize(v) for v in service.list_patient_reports(patient_id)]


@router.get("/{report_id}", response_model=ReportResponse)
def get_report(
    report_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_REPORTS)),
):
    return _serialize(service.get_report_with_prescriptions(report_id))
