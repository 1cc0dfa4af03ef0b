"""Home dashboard: headline counts and this month's registrations per day."""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from .deps import get_clinic_service
from ..core.security import get_current_user
from ..services.clinic_service import ClinicService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DailyRegistrations(BaseModel):
    day: date
    label: str
    patients: int


class DashboardResponse(BaseModel):
    total_patients: int
    total_medicines: int
    total_reports: int
    daily_registrations: List[DailyRegistrations]


@router.get("/", response_model=DashboardResponse)
def get_dashboard(
    today: Optional[date] = None,
    service: ClinicService = Depends(get_clinic_service),
    current_user=Depends(get_current_user),
):
    stats = service.dashboard_stats(today)
    return DashboardResponse(
        total_patients=stats.total_patients,
        total_medicines=stats.total_medicines,
        total_reports=stats.total_reports,
        daily_registrations=[
            DailyRegistrations(day=c.day, label=c.day.strftime("%b %d"), patients=c.patients)
            for c in stats.daily_registrations
        ],
    )
