from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from .deps import get_clinic_service
from ..services.clinic_service import ClinicService
from ..services.exporters import export_usage_reports, XLSX_MEDIA_TYPE
from ..services.usage_grouping import UsageFilters, iso_string
from ..core.security import require_permission
from ..core.permissions import PERM_DISPENSE_MEDICINE, PERM_VIEW_MEDICINE_USAGE

router = APIRouter(prefix="/usage", tags=["usage"])


class UsageCreate(BaseModel):
    patient_id: str
    medicine_id: str
    quantity: int = Field(..., gt=0)
    usage_date: Optional[datetime] = None


class UsageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: Optional[str]
    medicine_id: Optional[str]
    quantity_used: int
    usage_date: datetime
    created_by: Optional[str]


class UsagePatient(BaseModel):
    id: Optional[str]
    patient_id: Optional[int]
    name: Optional[str]


class UsageLineResponse(BaseModel):
    medicine_id: Optional[str]
    medicine_name: Optional[str]
    quantity: int


class UsageGroupResponse(BaseModel):
    report_date: str
    day: str
    patient: UsagePatient
    medicines: List[UsageLineResponse]
    total_medicines: int


class UsageReportsResponse(BaseModel):
    items: List[UsageGroupResponse]
    page: int
    page_size: int
    total_items: int
    total_pages: int
    issues: List[dict]


def _group_to_dict(group) -> dict:
    patient = group.patient
    return {
        "report_date": iso_string(group.report_date),
        "day": group.day,
        "patient": {
            "id": getattr(patient, "id", None),
            "patient_id": getattr(patient, "patient_id", None),
            "name": getattr(patient, "name", None),
        },
        "medicines": [
            {
                "medicine_id": getattr(line.medicine, "id", None),
                "medicine_name": getattr(line.medicine, "name", None),
                "quantity": line.quantity,
            }
            for line in group.medicines
        ],
        "total_medicines": group.total_medicines,
    }


@router.post("/", response_model=UsageResponse, status_code=status.HTTP_201_CREATED)
def record_usage(
    usage_in: UsageCreate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_DISPENSE_MEDICINE)),
):
    """Dispense a medicine to a patient and book the matching stock removal."""
    try:
        return service.record_usage(
            usage_in.patient_id,
            usage_in.medicine_id,
            usage_in.quantity,
            created_by=current_user.id,
            usage_date=usage_in.usage_date,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/reports", response_model=UsageReportsResponse)
def get_usage_reports(
    search: str = "",
    date: str = "",
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_MEDICINE_USAGE)),
):
    """
    Usage grouped per patient per calendar day, newest first.
    `search` matches patient name, patient number or medicine name;
    `date` is a prefix of the ISO usage date (e.g. 2024-03 or 2024-03-05).
    """
    result = service.get_usage_reports(UsageFilters(search_term=search, date_filter=date), page, page_size)
    view = result.page
    return {
        "items": [_group_to_dict(g) for g in view.items],
        "page": view.page,
        "page_size": view.page_size,
        "total_items": view.total_items,
        "total_pages": view.total_pages,
        "issues": [issue.as_dict() for issue in result.issues],
    }


@router.get("/export")
def export_usage(
    search: str = "",
    date: str = "",
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_MEDICINE_USAGE)),
):
    """Every filtered group (not just one page) as an Excel workbook."""
    groups, _ = service.get_usage_groups(UsageFilters(search_term=search, date_filter=date))
    filename, buffer = export_usage_reports(groups)
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
