"""
Spreadsheet exports for the usage, stock and patient lists.
Workbooks are built entirely in memory and returned as (filename, buffer).
"""
import io
from datetime import date, datetime
from typing import Iterable, List, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from ..core.config import settings
from .usage_grouping import GroupedUsageReport, calendar_day

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _auto_width(ws):
    """Auto adjust column width"""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is not None:
                max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = max_len + 2


def _fmt_date(value) -> str:
    if value is None:
        return "N/A"
    if isinstance(value, (datetime, date)):
        return value.strftime("%b %d, %Y")
    return calendar_day(value)


def _summary_sheet(wb: Workbook, rows: Sequence[Tuple[str, object]]):
    ws = wb.create_sheet("Summary")
    ws.append(["Summary", "Value"])
    for label, value in rows:
        ws.append([label, value])
    ws.append(["Generated On", datetime.now().strftime("%b %d, %Y %I:%M:%S %p")])
    _auto_width(ws)


def _to_buffer(wb: Workbook) -> io.BytesIO:
    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer


def export_usage_reports(groups: Iterable[GroupedUsageReport]) -> Tuple[str, io.BytesIO]:
    """One row per dispensed line, flattened out of the per-day groups."""
    groups = list(groups)
    wb = Workbook()
    ws = wb.active
    ws.title = "Medicine Usage"
    ws.append(["Patient ID", "Patient Name", "Medicine", "Quantity", "Report Date"])

    entries = 0
    for group in groups:
        for line in group.medicines:
            ws.append([
                group.patient.patient_id,
                group.patient.name or "N/A",
                line.medicine.name or "N/A",
                line.quantity,
                _fmt_date(group.report_date),
            ])
            entries += 1
    _auto_width(ws)

    _summary_sheet(wb, [("Total Records", len(groups)), ("Total Medicine Entries", entries)])
    filename = f"medicine-usage-report-{date.today().isoformat()}.xlsx"
    return filename, _to_buffer(wb)


def export_medicine_stock(medicines: Iterable) -> Tuple[str, io.BytesIO]:
    medicines: List = list(medicines)
    wb = Workbook()
    ws = wb.active
    ws.title = "Medicine Stock"
    ws.append(["Serial No.", "Medicine Name", "Category", "Stock Quantity", "Expiry Date", "Last Updated"])
    for m in medicines:
        ws.append([
            m.serial_number,
            m.name or "N/A",
            m.category or "N/A",
            m.total_quantity,
            _fmt_date(m.expiry_date),
            _fmt_date(m.last_updated),
        ])
    _auto_width(ws)

    threshold = settings.LOW_STOCK_THRESHOLD
    low_stock = len([m for m in medicines if m.total_quantity < threshold])
    _summary_sheet(wb, [
        ("Total Medicines", len(medicines)),
        (f"Low Stock Alert (< {threshold} units)", low_stock),
    ])
    filename = f"medicine-stock-report-{date.today().isoformat()}.xlsx"
    return filename, _to_buffer(wb)


def export_patients(patients: Iterable) -> Tuple[str, io.BytesIO]:
    patients = list(patients)
    wb = Workbook()
    ws = wb.active
    ws.title = "Patients"
    ws.append([
        "Patient ID", "Name", "Age", "Gender", "Phone", "Address",
        "Category", "Description", "Registration Date",
    ])
    for p in patients:
        ws.append([
            p.patient_id,
            p.name,
            p.age,
            p.gender,
            p.phone_number or "N/A",
            p.address or "N/A",
            p.category or "N/A",
            p.description or "",
            _fmt_date(p.registration_date),
        ])
    _auto_width(ws)

    _summary_sheet(wb, [("Total Patients", len(patients))])
    filename = f"patients-report-{date.today().isoformat()}.xlsx"
    return filename, _to_buffer(wb)
