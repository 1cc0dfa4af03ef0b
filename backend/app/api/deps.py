from fastapi import Depends
from sqlalchemy.orm import Session

from ..models.base import get_db
from ..services.clinic_service import ClinicService
from ..services.store import SqlAlchemyStore


def get_clinic_service(db: Session = Depends(get_db)) -> ClinicService:
    return ClinicService(SqlAlchemyStore(db))
