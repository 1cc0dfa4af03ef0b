from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from typing import List, Optional
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from .deps import get_clinic_service
from ..services.clinic_service import ClinicService
from ..services.exporters import export_patients, XLSX_MEDIA_TYPE
from ..core.security import require_permission
from ..core.permissions import PERM_REGISTER_PATIENTS, PERM_VIEW_PATIENTS

router = APIRouter(prefix="/patients", tags=["patients"])


class PatientCreate(BaseModel):
    name: str
    age: int
    gender: str
    phone_number: Optional[str] = None
    address: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class PatientUpdate(BaseModel):
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    address: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None


class PatientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: int
    name: str
    age: int
    gender: str
    phone_number: Optional[str]
    address: Optional[str]
    category: Optional[str]
    description: Optional[str]
    registration_date: Optional[datetime]


@router.post("/", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def create_patient(
    patient_in: PatientCreate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_REGISTER_PATIENTS)),
):
    try:
        return service.register_patient(patient_in.model_dump(), created_by=current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/search", response_model=List[PatientResponse])
def search_patients(
    q: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_PATIENTS)),
):
    """Quick lookup by name, patient number or phone (max 10)."""
    return service.lookup_patients(q)


@router.get("/export")
def export_patient_list(
    id: Optional[str] = None,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    category: Optional[str] = None,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_PATIENTS)),
):
    """Download the filtered patient list as an Excel workbook."""
    patients = service.list_patients({"id": id, "name": name, "phone": phone, "category": category})
    filename, buffer = export_patients(patients)
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{patient_id}", response_model=PatientResponse)
def get_patient(
    patient_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_PATIENTS)),
):
    return service.get_patient(patient_id)


@router.put("/{patient_id}", response_model=PatientResponse)
def update_patient(
    patient_id: str,
    patient_in: PatientUpdate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_REGISTER_PATIENTS)),
):
    try:
        return service.update_patient(patient_id, patient_in.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/", response_model=List[PatientResponse])
def list_patients(
    id: Optional[str] = None,
    name: Optional[str] = None,
    phone: Optional[str] = None,
    category: Optional[str] = None,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_PATIENTS)),
):
    """All patients, newest first. Filters are ANDed; category="all" means any."""
    return service.list_patients({"id": id, "name": name, "phone": phone, "category": category})
