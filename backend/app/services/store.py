"""
Data store adapter: the four calls the clinic core makes against persistence.

The core only ever talks to a DataStore; SqlAlchemyStore is the SQL-backed
implementation. Every write commits on its own - there is no transaction
spanning several calls.
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import FetchError, NotFoundError
from ..models.user import User
from ..models.patient import Patient
from ..models.medicine import Medicine, StockEvent
from ..models.usage import UsageRecord
from ..models.report import PatientReport, PrescribedMedicine

logger = logging.getLogger(__name__)

TABLES: Dict[str, type] = {
    "users": User,
    "patients": Patient,
    "medicines": Medicine,
    "medicine_stock_history": StockEvent,
    "medicine_usage": UsageRecord,
    "patient_reports": PatientReport,
    "medicine_prescriptions": PrescribedMedicine,
}


class DataStore(Protocol):
    def fetch_all(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Any]: ...

    def insert(self, table: str, row: Mapping[str, Any]) -> Any: ...

    def update(self, table: str, id: str, patch: Mapping[str, Any]) -> None: ...

    def delete(self, table: str, id: str) -> None: ...


class SqlAlchemyStore:
    """DataStore over a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_all(self, table, filters=None, order_by=None, limit=None):
        model = self._model(table)
        q = self.db.query(model)
        for column_name, value in (filters or {}).items():
            column = self._column(model, table, column_name)
            if isinstance(value, (list, tuple, set)):
                q = q.filter(column.in_(list(value)))
            elif value is None:
                q = q.filter(column.is_(None))
            else:
                q = q.filter(column == value)
        if order_by:
            descending = order_by.startswith("-")
            column = self._column(model, table, order_by.lstrip("-"))
            q = q.order_by(column.desc() if descending else column.asc())
        if limit:
            q = q.limit(limit)
        try:
            return q.all()
        except SQLAlchemyError as exc:
            raise FetchError(f"Failed to fetch {table}: {exc}", table=table) from exc

    def insert(self, table, row):
        model = self._model(table)
        for column_name in row:
            self._column(model, table, column_name)
        obj = model(**row)
        try:
            self.db.add(obj)
            self.db.commit()
            self.db.refresh(obj)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise FetchError(f"Failed to insert into {table}: {exc}", table=table) from exc
        return obj

    def update(self, table, id, patch):
        model = self._model(table)
        obj = self._get(model, table, id)
        for column_name, value in patch.items():
            self._column(model, table, column_name)
            setattr(obj, column_name, value)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise FetchError(f"Failed to update {table}/{id}: {exc}", table=table) from exc

    def delete(self, table, id):
        model = self._model(table)
        obj = self._get(model, table, id)
        try:
            self.db.delete(obj)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise FetchError(f"Failed to delete {table}/{id}: {exc}", table=table) from exc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _model(table: str) -> type:
        try:
            return TABLES[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table!r}") from None

    @staticmethod
    def _column(model: type, table: str, column_name: str):
        if column_name not in model.__table__.columns:
            raise ValueError(f"Unknown column {column_name!r} on {table}")
        return getattr(model, column_name)

    def _get(self, model: type, table: str, id: str):
        try:
            obj = self.db.query(model).filter(model.id == id).first()
        except SQLAlchemyError as exc:
            raise FetchError(f"Failed to fetch {table}/{id}: {exc}", table=table) from exc
        if obj is None:
            raise NotFoundError(table, id)
        return obj
