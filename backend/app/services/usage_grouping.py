"""
Medicine usage grouping - turns flat dispensing records into per-patient,
per-day report cards for the usage page and the spreadsheet export.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.errors import DataIntegrityError

logger = logging.getLogger(__name__)

ORPHAN_DROP = "drop"
ORPHAN_SURFACE = "surface"
ORPHAN_POLICIES = (ORPHAN_DROP, ORPHAN_SURFACE)


@dataclass
class UsageFilters:
    search_term: str = ""
    date_filter: str = ""


@dataclass
class ResolvedUsage:
    """A usage record joined with its patient and medicine rows."""
    id: Optional[str]
    patient_id: Optional[str]
    medicine_id: Optional[str]
    quantity_used: int
    usage_date: object
    created_by: Optional[str] = None
    patient: Optional[object] = None
    medicine: Optional[object] = None


@dataclass
class UsageLine:
    medicine: object
    quantity: int


@dataclass
class GroupedUsageReport:
    report_date: object
    patient: object
    medicines: List[UsageLine] = field(default_factory=list)
    total_medicines: int = 0

    @property
    def day(self) -> str:
        return calendar_day(self.report_date)


@dataclass
class PageView:
    items: list
    page: int
    page_size: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size) if self.total_items else 0


def iso_string(value) -> str:
    """The raw ISO text of a usage date; strings pass through untouched."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def calendar_day(value) -> str:
    """Date segment of the ISO string, no timezone conversion."""
    return iso_string(value).split("T")[0]


def instant(value) -> datetime:
    """
    Point in time for ordering. Offset-aware values are compared in UTC;
    naive ones are taken as UTC already. Unparseable text sorts last.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    else:
        text = iso_string(value)
        try:
            moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return datetime.min
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def resolve_usage(
    records: Iterable,
    patients_by_id: Dict[str, object],
    medicines_by_id: Dict[str, object],
    orphan_policy: str = ORPHAN_DROP,
) -> Tuple[List[ResolvedUsage], List[DataIntegrityError]]:
    """
    Join usage rows with their patient and medicine.
    Rows with a dangling reference are excluded; under the "surface" policy
    each one is also reported back as a DataIntegrityError.
    """
    if orphan_policy not in ORPHAN_POLICIES:
        raise ValueError(f"Unknown orphan policy: {orphan_policy!r}. Choose from: {ORPHAN_POLICIES}")

    resolved: List[ResolvedUsage] = []
    issues: List[DataIntegrityError] = []
    for record in records:
        patient = patients_by_id.get(record.patient_id) if record.patient_id else None
        medicine = medicines_by_id.get(record.medicine_id) if record.medicine_id else None
        if patient is None or medicine is None:
            missing = "patient" if patient is None else "medicine"
            if orphan_policy == ORPHAN_SURFACE:
                issue = DataIntegrityError(
                    f"Usage record {record.id} references a missing {missing}",
                    record_type="medicine_usage",
                    record_id=record.id,
                )
                logger.warning("%s", issue)
                issues.append(issue)
            else:
                logger.debug("Dropping usage record %s with missing %s", record.id, missing)
            continue
        resolved.append(
            ResolvedUsage(
                id=record.id,
                patient_id=record.patient_id,
                medicine_id=record.medicine_id,
                quantity_used=record.quantity_used,
                usage_date=record.usage_date,
                created_by=getattr(record, "created_by", None),
                patient=patient,
                medicine=medicine,
            )
        )
    return resolved, issues


def filter_usage(records: Iterable[ResolvedUsage], filters: Optional[UsageFilters] = None) -> List[ResolvedUsage]:
    filters = filters or UsageFilters()
    result = list(records)

    if filters.search_term and filters.search_term.strip():
        term = filters.search_term
        term_lower = term.lower()
        result = [
            r for r in result
            if (r.patient is not None and term_lower in (r.patient.name or "").lower())
            or (r.medicine is not None and term_lower in (r.medicine.name or "").lower())
            or (r.patient is not None and term in str(r.patient.patient_id))
        ]

    if filters.date_filter:
        result = [r for r in result if iso_string(r.usage_date).startswith(filters.date_filter)]

    return result


def group_by_patient_and_day(
    records: Iterable[ResolvedUsage],
    filters: Optional[UsageFilters] = None,
) -> List[GroupedUsageReport]:
    """
    Group usage by (patient, calendar day), newest report first.
    Each record becomes its own line; the same medicine twice in a day gives two lines.
    """
    groups: Dict[Tuple[str, str], GroupedUsageReport] = {}
    for record in filter_usage(records, filters):
        if record.patient is None or record.medicine is None:
            continue
        key = (record.patient_id, calendar_day(record.usage_date))
        group = groups.get(key)
        if group is None:
            group = GroupedUsageReport(report_date=record.usage_date, patient=record.patient)
            groups[key] = group
        group.medicines.append(UsageLine(medicine=record.medicine, quantity=record.quantity_used))
        group.total_medicines += record.quantity_used

    return sorted(groups.values(), key=lambda g: instant(g.report_date), reverse=True)


def paginate(groups: Sequence, page: int, page_size: int) -> PageView:
    """1-indexed slice; a page past the end is empty rather than an error."""
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    start = (page - 1) * page_size
    return PageView(
        items=list(groups[start:start + page_size]),
        page=page,
        page_size=page_size,
        total_items=len(groups),
    )
