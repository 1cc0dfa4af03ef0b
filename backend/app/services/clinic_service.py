"""
Clinic query façade.

Single entry point the API layer (and exporters) use for stock, usage and
report reads. Composes the stock ledger and usage grouping engine over a
DataStore, and owns the few write paths whose business rules live in the
core (stock events, dispensing, report creation). Store failures propagate
as FetchError; nothing here retries.
"""
import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Mapping, Optional, Sequence

from ..core.config import settings
from ..core.errors import DataIntegrityError, NotFoundError
from ..models.medicine import MedicineCategory, StockType
from ..models.patient import PatientCategory
from ..models.report import ReportRole
from . import stock_ledger
from .search import MEDICINE_FIELDS, PATIENT_FIELDS, REPORT_FIELDS, search_filtered
from .store import DataStore
from .usage_grouping import (
    PageView,
    UsageFilters,
    group_by_patient_and_day,
    paginate,
    resolve_usage,
)

logger = logging.getLogger(__name__)

PATIENT_USAGE = "patient_usage"

VITAL_FIELDS = (
    "hemoglobin",
    "wbc",
    "platelets",
    "blood_pressure",
    "temperature",
    "weight",
    "clinical_complaint",
)
DOCTOR_FIELDS = VITAL_FIELDS + ("medical_history", "observations", "recommendations")
PATIENT_FIELDS_WRITABLE = (
    "name",
    "age",
    "gender",
    "phone_number",
    "address",
    "category",
    "description",
)


@dataclass
class MedicineStockView:
    """A medicine with its quantity recomputed from the ledger."""
    id: str
    serial_number: int
    name: str
    category: str
    total_quantity: int
    stored_quantity: Optional[int]
    expiry_date: Optional[date]
    last_updated: Optional[datetime]
    stock_status: str
    integrity_warning: Optional[str] = None


@dataclass
class PrescriptionView:
    id: str
    medicine_id: Optional[str]
    medicine_name: Optional[str]
    quantity: int
    morning: bool
    afternoon: bool
    evening: bool
    night: bool

    @property
    def dosage_times(self) -> List[str]:
        flags = (
            ("Morning", self.morning),
            ("Afternoon", self.afternoon),
            ("Evening", self.evening),
            ("Night", self.night),
        )
        return [label for label, on in flags if on]


@dataclass
class ReportView:
    report: object
    patient: Optional[object]
    prescriptions: List[PrescriptionView] = field(default_factory=list)

    # Flattened accessors so the generic search can reach report fields
    @property
    def id(self) -> str:
        return self.report.id

    @property
    def report_number(self) -> Optional[int]:
        return self.report.report_number

    @property
    def created_by_role(self) -> Optional[str]:
        return self.report.created_by_role


@dataclass
class UsageReportPage:
    page: PageView
    issues: List[DataIntegrityError] = field(default_factory=list)


@dataclass
class DailyCount:
    day: date
    patients: int


@dataclass
class DashboardStats:
    total_patients: int
    total_medicines: int
    total_reports: int
    daily_registrations: List[DailyCount] = field(default_factory=list)


def _normalize_patient_category(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if value not in PatientCategory.ALL:
        raise ValueError(f"Invalid patient category. Choose from: {PatientCategory.ALL}")
    return value


class ClinicService:
    """Reads and rule-checked writes for patients, stock, usage and reports."""

    def __init__(
        self,
        store: DataStore,
        low_stock_threshold: Optional[int] = None,
        orphan_policy: Optional[str] = None,
        write_back: Optional[bool] = None,
        report_number_start: Optional[int] = None,
    ):
        self.store = store
        self.low_stock_threshold = (
            settings.LOW_STOCK_THRESHOLD if low_stock_threshold is None else low_stock_threshold
        )
        self.orphan_policy = orphan_policy or settings.USAGE_ORPHAN_POLICY
        self.write_back = settings.STOCK_CACHE_WRITE_BACK if write_back is None else write_back
        self.report_number_start = (
            settings.REPORT_NUMBER_START if report_number_start is None else report_number_start
        )

    # ── Medicines & stock ───────────────────────────────────────────────────

    def get_medicine_with_stock(self, medicine_id: str) -> MedicineStockView:
        """Medicine row reconciled against its full event history."""
        medicine = self._get_one("medicines", medicine_id)
        events = self.store.fetch_all("medicine_stock_history", {"medicine_id": medicine_id})
        return self._reconcile(medicine, events)

    def list_medicines_with_stock(
        self, filter_spec: Optional[Mapping[str, Optional[str]]] = None
    ) -> List[MedicineStockView]:
        medicines = self.store.fetch_all("medicines", order_by="name")
        if not medicines:
            return []
        events = self.store.fetch_all(
            "medicine_stock_history", {"medicine_id": [m.id for m in medicines]}
        )
        events_by_medicine: Dict[str, list] = {}
        for event in events:
            events_by_medicine.setdefault(event.medicine_id, []).append(event)
        views = [self._reconcile(m, events_by_medicine.get(m.id, [])) for m in medicines]
        return search_filtered(views, filter_spec, MEDICINE_FIELDS)

    def create_medicine(
        self,
        name: str,
        category: str,
        quantity: int = 0,
        expiry_date: Optional[date] = None,
        created_by: Optional[str] = None,
        user_type: Optional[str] = None,
    ) -> MedicineStockView:
        if category not in MedicineCategory.ALL:
            raise ValueError(f"Invalid medicine category. Choose from: {MedicineCategory.ALL}")
        if quantity < 0:
            raise ValueError("Opening quantity cannot be negative")

        medicine = self.store.insert(
            "medicines",
            {
                "name": name,
                "category": category,
                "serial_number": self._next_sequence("medicines", "serial_number", 1),
                "total_quantity": 0,
                "expiry_date": expiry_date,
                "last_updated": datetime.utcnow(),
            },
        )
        logger.info("Medicine %s (%s) created", medicine.name, medicine.id)
        if quantity > 0:
            self.record_stock_event(
                medicine.id,
                StockType.ADD,
                quantity,
                expiry_date=expiry_date,
                created_by=created_by,
                user_type=user_type,
            )
        return self.get_medicine_with_stock(medicine.id)

    def delete_medicine(self, medicine_id: str) -> None:
        """
        Delete a medicine and its ledger. Dispensing and prescription rows are
        kept with their medicine reference cleared, so usage reports treat
        them as orphans instead of the delete failing on a foreign key.
        """
        self._get_one("medicines", medicine_id)
        for table in ("medicine_usage", "medicine_prescriptions"):
            for row in self.store.fetch_all(table, {"medicine_id": medicine_id}):
                self.store.update(table, row.id, {"medicine_id": None})
        self.store.delete("medicines", medicine_id)
        logger.info("Medicine %s deleted", medicine_id)

    def record_stock_event(
        self,
        medicine_id: str,
        stock_type: str,
        quantity: int,
        expiry_date: Optional[date] = None,
        created_by: Optional[str] = None,
        user_type: Optional[str] = None,
        usage_id: Optional[str] = None,
    ) -> MedicineStockView:
        """Append one ledger event; removals are checked against derived stock first."""
        if stock_type not in StockType.ALL:
            raise ValueError(f"Invalid stock type. Choose from: {StockType.ALL}")
        if quantity <= 0:
            raise ValueError("Quantity must be a positive integer")

        current = self.get_medicine_with_stock(medicine_id)
        if stock_type == StockType.REMOVE:
            stock_ledger.validate_removal(current.total_quantity, quantity)

        self.store.insert(
            "medicine_stock_history",
            {
                "medicine_id": medicine_id,
                "stock_type": stock_type,
                "quantity": quantity,
                "expiry_date": expiry_date if stock_type == StockType.ADD else None,
                "created_by": created_by,
                "user_type": user_type,
                "usage_id": usage_id,
            },
        )
        logger.info(
            "Stock %s of %d for medicine %s by %s", stock_type, quantity, medicine_id, created_by
        )

        patch = {"last_updated": datetime.utcnow()}
        if stock_type == StockType.ADD and expiry_date is not None:
            patch["expiry_date"] = expiry_date
        self.store.update("medicines", medicine_id, patch)
        return self.get_medicine_with_stock(medicine_id)

    def get_stock_history(self, medicine_id: str) -> List[stock_ledger.StockMovement]:
        """Ledger with running balance, newest first, dispensing rows named by patient."""
        self._get_one("medicines", medicine_id)
        events = self.store.fetch_all("medicine_stock_history", {"medicine_id": medicine_id})
        movements = stock_ledger.running_balance(events)

        usage_ids = [m.usage_id for m in movements if m.usage_id]
        if usage_ids:
            usages = self.store.fetch_all("medicine_usage", {"id": usage_ids})
            patient_ids = [u.patient_id for u in usages if u.patient_id]
            patients = self.store.fetch_all("patients", {"id": patient_ids}) if patient_ids else []
            patient_names = {p.id: p.name for p in patients}
            names_by_usage = {u.id: patient_names.get(u.patient_id) for u in usages}
            for movement in movements:
                if movement.usage_id:
                    movement.patient_name = names_by_usage.get(movement.usage_id) or "Unknown Patient"

        movements.reverse()
        return movements

    # ── Medicine usage ──────────────────────────────────────────────────────

    def record_usage(
        self,
        patient_id: str,
        medicine_id: str,
        quantity: int,
        created_by: Optional[str] = None,
        usage_date: Optional[datetime] = None,
    ):
        """Dispense to a patient: usage row, then the matching ledger removal."""
        if quantity <= 0:
            raise ValueError("Quantity must be a positive integer")
        self._get_one("patients", patient_id)
        current = self.get_medicine_with_stock(medicine_id)
        stock_ledger.validate_removal(current.total_quantity, quantity)

        usage = self.store.insert(
            "medicine_usage",
            {
                "patient_id": patient_id,
                "medicine_id": medicine_id,
                "quantity_used": quantity,
                "usage_date": usage_date or datetime.utcnow(),
                "created_by": created_by,
            },
        )
        self.record_stock_event(
            medicine_id,
            StockType.REMOVE,
            quantity,
            created_by=created_by,
            user_type=PATIENT_USAGE,
            usage_id=usage.id,
        )
        return usage

    def get_usage_groups(self, filters: Optional[UsageFilters] = None):
        """All usage groups after filtering, plus any surfaced integrity issues."""
        records = self.store.fetch_all("medicine_usage", order_by="-usage_date")
        if not records:
            return [], []
        patient_ids = list({r.patient_id for r in records if r.patient_id})
        medicine_ids = list({r.medicine_id for r in records if r.medicine_id})
        patients = self.store.fetch_all("patients", {"id": patient_ids}) if patient_ids else []
        medicines = self.store.fetch_all("medicines", {"id": medicine_ids}) if medicine_ids else []

        resolved, issues = resolve_usage(
            records,
            {p.id: p for p in patients},
            {m.id: m for m in medicines},
            orphan_policy=self.orphan_policy,
        )
        return group_by_patient_and_day(resolved, filters), issues

    def get_usage_reports(
        self,
        filters: Optional[UsageFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> UsageReportPage:
        groups, issues = self.get_usage_groups(filters)
        return UsageReportPage(
            page=paginate(groups, page, page_size or settings.USAGE_PAGE_SIZE),
            issues=issues,
        )

    # ── Patients ────────────────────────────────────────────────────────────

    def register_patient(self, data: Mapping, created_by: Optional[str] = None):
        row = {k: data.get(k) for k in PATIENT_FIELDS_WRITABLE if k in data}
        if not row.get("name"):
            raise ValueError("Patient name is required")
        if row.get("age") is None or row["age"] < 0:
            raise ValueError("Patient age must be zero or greater")
        row["category"] = _normalize_patient_category(row.get("category"))
        row["patient_id"] = self._next_sequence("patients", "patient_id", 1)
        row["registration_date"] = data.get("registration_date") or datetime.utcnow()
        row["created_by"] = created_by
        patient = self.store.insert("patients", row)
        logger.info("Patient %s registered as #%d", patient.id, patient.patient_id)
        return patient

    def update_patient(self, patient_id: str, patch: Mapping):
        self._get_one("patients", patient_id)
        changes = {k: v for k, v in patch.items() if k in PATIENT_FIELDS_WRITABLE}
        if "category" in changes:
            changes["category"] = _normalize_patient_category(changes["category"])
        if "age" in changes and (changes["age"] is None or changes["age"] < 0):
            raise ValueError("Patient age must be zero or greater")
        if changes:
            self.store.update("patients", patient_id, changes)
        return self._get_one("patients", patient_id)

    def get_patient(self, patient_id: str):
        return self._get_one("patients", patient_id)

    def list_patients(self, filter_spec: Optional[Mapping[str, Optional[str]]] = None) -> list:
        patients = self.store.fetch_all("patients", order_by="-patient_id")
        return search_filtered(patients, filter_spec, PATIENT_FIELDS)

    def lookup_patients(self, term: str, limit: int = 10) -> list:
        """Quick picker search by name, exact patient number or phone."""
        term = (term or "").strip()
        if not term:
            return []
        number = int(term) if term.isdigit() else None
        needle = term.lower()
        matches = [
            p for p in self.store.fetch_all("patients", order_by="-patient_id")
            if needle in (p.name or "").lower()
            or (number is not None and p.patient_id == number)
            or needle in (p.phone_number or "").lower()
        ]
        return matches[:limit]

    # ── Reports ─────────────────────────────────────────────────────────────

    def create_patient_report(
        self,
        patient_id: str,
        details: Mapping,
        prescriptions: Sequence[Mapping],
        created_by: Optional[str] = None,
        created_by_role: str = ReportRole.DOCTOR,
        dispense: bool = False,
    ) -> ReportView:
        """
        Doctor's report: the report row, then one row per prescription.
        With dispense=True each prescription is also dispensed; stock for all of
        them is checked before anything is written.
        """
        if created_by_role not in ReportRole.ALL:
            raise ValueError(f"Invalid report role. Choose from: {ReportRole.ALL}")
        if not prescriptions:
            raise ValueError("Please add at least one medicine prescription")
        self._get_one("patients", patient_id)

        requested: Dict[str, int] = {}
        for item in prescriptions:
            if item.get("quantity", 0) <= 0:
                raise ValueError("Prescribed quantity must be a positive integer")
            requested[item["medicine_id"]] = requested.get(item["medicine_id"], 0) + item["quantity"]
        stock = {mid: self.get_medicine_with_stock(mid) for mid in requested}
        if dispense:
            for mid, qty in requested.items():
                stock_ledger.validate_removal(stock[mid].total_quantity, qty)

        now = datetime.utcnow()
        row = {k: details.get(k) for k in DOCTOR_FIELDS}
        row.update(
            {
                "patient_id": patient_id,
                "created_by": created_by,
                "created_by_role": created_by_role,
                "report_date": now,
                "doctor_completed_at": now,
            }
        )
        report = self.store.insert("patient_reports", row)

        for item in prescriptions:
            self.store.insert(
                "medicine_prescriptions",
                {
                    "patient_report_id": report.id,
                    "medicine_id": item["medicine_id"],
                    "quantity": item["quantity"],
                    "morning": bool(item.get("morning")),
                    "afternoon": bool(item.get("afternoon")),
                    "evening": bool(item.get("evening")),
                    "night": bool(item.get("night")),
                },
            )
            if dispense:
                self.record_usage(patient_id, item["medicine_id"], item["quantity"], created_by=created_by)

        logger.info("Report %s saved for patient %s with %d prescriptions", report.id, patient_id, len(prescriptions))
        return self.get_report_with_prescriptions(report.id)

    def create_reception_report(
        self, patient_id: str, details: Mapping, created_by: Optional[str] = None
    ) -> ReportView:
        """Reception intake: vitals and complaint only, numbered from REPORT_NUMBER_START."""
        self._get_one("patients", patient_id)
        now = datetime.utcnow()
        row = {k: details.get(k) for k in VITAL_FIELDS}
        row.update(
            {
                "patient_id": patient_id,
                "created_by": created_by,
                "created_by_role": ReportRole.RECEPTION,
                "report_number": self._next_sequence(
                    "patient_reports", "report_number", self.report_number_start
                ),
                "report_date": now,
                "reception_completed_at": now,
            }
        )
        report = self.store.insert("patient_reports", row)
        logger.info("Reception report #%s saved for patient %s", report.report_number, patient_id)
        return self.get_report_with_prescriptions(report.id)

    def get_reception_report(self, report_id: str) -> ReportView:
        view = self.get_report_with_prescriptions(report_id)
        if view.report.created_by_role != ReportRole.RECEPTION:
            raise NotFoundError("reception report", report_id)
        return view

    def search_reception_reports(self, term: str = "", limit: int = 50) -> List[ReportView]:
        reports = self.store.fetch_all(
            "patient_reports",
            {"created_by_role": ReportRole.RECEPTION},
            order_by="-created_at",
            limit=limit,
        )
        views = self._report_views(reports, with_prescriptions=False)
        return search_filtered(views, {"search": term}, REPORT_FIELDS)

    def list_patient_reports(self, patient_id: str) -> List[ReportView]:
        self._get_one("patients", patient_id)
        reports = self.store.fetch_all("patient_reports", {"patient_id": patient_id}, order_by="-created_at")
        return self._report_views(reports)

    def latest_reports(self, limit: int = 50, role: Optional[str] = None) -> List[ReportView]:
        reports = self.store.fetch_all("patient_reports", order_by="-created_at", limit=limit)
        views = self._report_views(reports)
        return search_filtered(views, {"role": role}, REPORT_FIELDS)

    def get_report_with_prescriptions(self, report_id: str) -> ReportView:
        report = self._get_one("patient_reports", report_id)
        return self._report_views([report])[0]

    # ── Dashboard ───────────────────────────────────────────────────────────

    def dashboard_stats(self, today: Optional[date] = None) -> DashboardStats:
        """Headline counts plus new registrations for each day of the current month."""
        today = today or date.today()
        patients = self.store.fetch_all("patients")
        per_day: Dict[date, int] = {}
        for p in patients:
            registered = p.registration_date
            if registered is None:
                continue
            day = registered.date() if isinstance(registered, datetime) else registered
            per_day[day] = per_day.get(day, 0) + 1

        _, days_in_month = calendar.monthrange(today.year, today.month)
        daily = [
            DailyCount(day=d, patients=per_day.get(d, 0))
            for d in (date(today.year, today.month, n) for n in range(1, days_in_month + 1))
        ]
        return DashboardStats(
            total_patients=len(patients),
            total_medicines=len(self.store.fetch_all("medicines")),
            total_reports=len(self.store.fetch_all("patient_reports")),
            daily_registrations=daily,
        )

    # ── Internal helpers ────────────────────────────────────────────────────

    def _get_one(self, table: str, record_id: str):
        rows = self.store.fetch_all(table, {"id": record_id})
        if not rows:
            raise NotFoundError(table, record_id)
        return rows[0]

    def _next_sequence(self, table: str, column: str, start: int) -> int:
        # Not safe against concurrent inserts; the unique constraint rejects a collision
        values = [getattr(r, column) for r in self.store.fetch_all(table)]
        values = [v for v in values if v is not None]
        if not values:
            return start
        return max(max(values) + 1, start)

    def _reconcile(self, medicine, events: Sequence) -> MedicineStockView:
        quantity = stock_ledger.derive_quantity(events)
        warning = None
        if quantity < 0:
            issue = DataIntegrityError(
                f"Derived stock for medicine {medicine.id} is negative ({quantity})",
                record_type="medicines",
                record_id=medicine.id,
            )
            logger.warning("%s", issue)
            warning = str(issue)

        stored = medicine.total_quantity
        if self.write_back and stored != quantity:
            self.store.update("medicines", medicine.id, {"total_quantity": quantity})

        return MedicineStockView(
            id=medicine.id,
            serial_number=medicine.serial_number,
            name=medicine.name,
            category=medicine.category,
            total_quantity=quantity,
            stored_quantity=stored,
            expiry_date=medicine.expiry_date,
            last_updated=medicine.last_updated,
            stock_status=stock_ledger.stock_status(quantity, self.low_stock_threshold),
            integrity_warning=warning,
        )

    def _report_views(self, reports: Sequence, with_prescriptions: bool = True) -> List[ReportView]:
        if not reports:
            return []
        patient_ids = list({r.patient_id for r in reports})
        patients = {p.id: p for p in self.store.fetch_all("patients", {"id": patient_ids})}

        prescriptions_by_report: Dict[str, List[PrescriptionView]] = {}
        if with_prescriptions:
            rows = self.store.fetch_all(
                "medicine_prescriptions", {"patient_report_id": [r.id for r in reports]}
            )
            medicine_ids = list({p.medicine_id for p in rows if p.medicine_id})
            medicines = (
                {m.id: m for m in self.store.fetch_all("medicines", {"id": medicine_ids})}
                if medicine_ids else {}
            )
            for p in rows:
                medicine = medicines.get(p.medicine_id)
                prescriptions_by_report.setdefault(p.patient_report_id, []).append(
                    PrescriptionView(
                        id=p.id,
                        medicine_id=p.medicine_id,
                        medicine_name=medicine.name if medicine else None,
                        quantity=p.quantity,
                        morning=bool(p.morning),
                        afternoon=bool(p.afternoon),
                        evening=bool(p.evening),
                        night=bool(p.night),
                    )
                )

        return [
            ReportView(
                report=r,
                patient=patients.get(r.patient_id),
                prescriptions=prescriptions_by_report.get(r.id, []),
            )
            for r in reports
        ]
