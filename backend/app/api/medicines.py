"""Medicine inventory: catalogue, ledger-backed stock levels and stock movements."""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from .deps import get_clinic_service
from ..services.clinic_service import ClinicService
from ..services.exporters import export_medicine_stock, XLSX_MEDIA_TYPE
from ..core.security import require_permission
from ..core.permissions import PERM_MANAGE_STOCK, PERM_VIEW_MEDICINES

router = APIRouter(prefix="/medicines", tags=["medicines"])


class MedicineCreate(BaseModel):
    name: str
    category: str
    quantity: int = Field(0, ge=0)
    expiry_date: Optional[date] = None


class StockEventCreate(BaseModel):
    stock_type: str
    quantity: int = Field(..., gt=0)
    expiry_date: Optional[date] = None


class MedicineResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    serial_number: int
    name: str
    category: str
    total_quantity: int
    expiry_date: Optional[date]
    last_updated: Optional[datetime]
    stock_status: str
    integrity_warning: Optional[str] = None


class StockMovementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: Optional[str]
    stock_type: str
    quantity: int
    balance_after: int
    created_at: Optional[datetime]
    expiry_date: Optional[date]
    created_by: Optional[str]
    user_type: Optional[str]
    patient_name: Optional[str]


@router.post("/", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
def create_medicine(
    medicine_in: MedicineCreate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_MANAGE_STOCK)),
):
    """Add a medicine; a positive opening quantity is booked as the first ledger entry."""
    try:
        return service.create_medicine(
            name=medicine_in.name,
            category=medicine_in.category,
            quantity=medicine_in.quantity,
            expiry_date=medicine_in.expiry_date,
            created_by=current_user.id,
            user_type=current_user.role,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/export")
def export_stock(
    search: Optional[str] = None,
    category: Optional[str] = None,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_MEDICINES)),
):
    medicines = service.list_medicines_with_stock({"search": search, "category": category})
    filename, buffer = export_medicine_stock(medicines)
    return StreamingResponse(
        buffer,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/", response_model=List[MedicineResponse])
def list_medicines(
    search: Optional[str] = None,
    category: Optional[str] = None,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_MEDICINES)),
):
    """Medicines by name, stock recomputed from the ledger."""
    return service.list_medicines_with_stock({"search": search, "category": category})


@router.get("/{medicine_id}", response_model=MedicineResponse)
def get_medicine(
    medicine_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_MEDICINES)),
):
    return service.get_medicine_with_stock(medicine_id)


@router.get("/{medicine_id}/history", response_model=List[StockMovementResponse])
def get_stock_history(
    medicine_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_VIEW_MEDICINES)),
):
    """Stock movements newest first, each with the balance after it."""
    return service.get_stock_history(medicine_id)


@router.post("/{medicine_id}/stock", response_model=MedicineResponse, status_code=status.HTTP_201_CREATED)
def record_stock_event(
    medicine_id: str,
    event_in: StockEventCreate,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_MANAGE_STOCK)),
):
    """Add or remove stock. Removals beyond the derived quantity are rejected with 409."""
    try:
        return service.record_stock_event(
            medicine_id,
            event_in.stock_type,
            event_in.quantity,
            expiry_date=event_in.expiry_date,
            created_by=current_user.id,
            user_type=current_user.role,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{medicine_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_medicine(
    medicine_id: str,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(require_permission(PERM_MANAGE_STOCK)),
):
    service.delete_medicine(medicine_id)
