"""
Generic in-memory multi-field filtering shared by patients, medicines and reports.

Fields are ANDed; the targets inside one field are ORed. A blank value puts no
constraint on a field, except category fields, which are lifted only by the
sentinel "all". The report role filter accepts either.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

ALL_CATEGORIES = "all"

CONTAINS = "contains"
ICONTAINS = "icontains"
IEQUALS = "iequals"


@dataclass(frozen=True)
class FieldFilter:
    targets: Sequence[str]
    mode: str = ICONTAINS
    unconstrained: Tuple[str, ...] = ("",)

    def is_unconstrained(self, value: Optional[str]) -> bool:
        return value is None or value in self.unconstrained

    def matches(self, item, value: str) -> bool:
        return any(_match(_resolve(item, target), value, self.mode) for target in self.targets)


def _resolve(item, path: str):
    """Read a dotted attribute path (or mapping keys) off an item."""
    current = item
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part)
        else:
            current = getattr(current, part, None)
    return current


def _match(candidate, value: str, mode: str) -> bool:
    if candidate is None:
        return False
    text = str(candidate)
    if mode == CONTAINS:
        return value in text
    if mode == ICONTAINS:
        return value.lower() in text.lower()
    if mode == IEQUALS:
        return text.lower() == value.lower()
    raise ValueError(f"Unknown match mode: {mode!r}")


PATIENT_FIELDS: Dict[str, FieldFilter] = {
    "id": FieldFilter(("patient_id",), CONTAINS),
    "name": FieldFilter(("name",), ICONTAINS),
    "phone": FieldFilter(("phone_number",), CONTAINS),
    "category": FieldFilter(("category",), IEQUALS, unconstrained=(ALL_CATEGORIES,)),
    "search": FieldFilter(("name", "patient_id", "phone_number"), ICONTAINS),
}

MEDICINE_FIELDS: Dict[str, FieldFilter] = {
    "search": FieldFilter(("name", "category", "serial_number"), ICONTAINS),
    "name": FieldFilter(("name",), ICONTAINS),
    "category": FieldFilter(("category",), IEQUALS, unconstrained=(ALL_CATEGORIES,)),
}

REPORT_FIELDS: Dict[str, FieldFilter] = {
    "search": FieldFilter(
        ("report_number", "patient.name", "patient.patient_id", "patient.phone_number"),
        ICONTAINS,
    ),
    "role": FieldFilter(("created_by_role",), IEQUALS, unconstrained=("", ALL_CATEGORIES)),
}


def search_filtered(
    collection: Iterable,
    filter_spec: Optional[Mapping[str, Optional[str]]],
    fields: Mapping[str, FieldFilter] = PATIENT_FIELDS,
) -> List:
    """Return the items matching every constrained field, in input order."""
    active = []
    for name, value in (filter_spec or {}).items():
        if name not in fields:
            raise ValueError(f"Unknown filter field: {name!r}. Choose from: {sorted(fields)}")
        field_filter = fields[name]
        if field_filter.is_unconstrained(value):
            continue
        active.append((field_filter, value))

    if not active:
        return list(collection)
    return [item for item in collection if all(f.matches(item, v) for f, v in active)]
