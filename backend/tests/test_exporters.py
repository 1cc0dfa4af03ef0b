from datetime import date, datetime
from types import SimpleNamespace

from openpyxl import load_workbook

from app.services.exporters import export_medicine_stock, export_patients, export_usage_reports
from app.services.usage_grouping import GroupedUsageReport, UsageLine


def _rows(ws):
    return [list(r) for r in ws.iter_rows(values_only=True)]


def _summary(wb):
    return {label: value for label, value in _rows(wb["Summary"])[1:]}


def test_usage_export_flattens_groups_into_lines():
    patient = SimpleNamespace(patient_id=7, name="Ali Khan")
    group = GroupedUsageReport(
        report_date="2024-03-05T09:15:00",
        patient=patient,
        medicines=[
            UsageLine(SimpleNamespace(name="Paracetamol"), 2),
            UsageLine(SimpleNamespace(name="Folic Acid"), 1),
        ],
        total_medicines=3,
    )
    filename, buffer = export_usage_reports([group])
    assert filename.startswith("medicine-usage-report-") and filename.endswith(".xlsx")

    wb = load_workbook(buffer)
    assert wb.sheetnames == ["Medicine Usage", "Summary"]
    rows = _rows(wb["Medicine Usage"])
    assert rows[0] == ["Patient ID", "Patient Name", "Medicine", "Quantity", "Report Date"]
    assert rows[1] == [7, "Ali Khan", "Paracetamol", 2, "2024-03-05"]
    assert len(rows) == 3
    summary = _summary(wb)
    assert summary["Total Records"] == 1
    assert summary["Total Medicine Entries"] == 2
    assert "Generated On" in summary


def test_stock_export_counts_low_stock():
    medicines = [
        SimpleNamespace(serial_number=1, name="Paracetamol", category="tablet", total_quantity=120,
                        expiry_date=date(2027, 6, 30), last_updated=datetime(2024, 3, 1, 10, 0)),
        SimpleNamespace(serial_number=2, name="Folic Acid", category="syrup", total_quantity=8,
                        expiry_date=None, last_updated=None),
    ]
    _, buffer = export_medicine_stock(medicines)
    wb = load_workbook(buffer)
    rows = _rows(wb["Medicine Stock"])
    assert rows[1] == [1, "Paracetamol", "tablet", 120, "Jun 30, 2027", "Mar 01, 2024"]
    assert rows[2][4] == "N/A"
    summary = _summary(wb)
    assert summary["Total Medicines"] == 2
    assert summary["Low Stock Alert (< 10 units)"] == 1


def test_patient_export_fills_missing_fields():
    patients = [
        SimpleNamespace(patient_id=1, name="Ali Khan", age=9, gender="Male", phone_number=None,
                        address=None, category="Thalassemic", description=None,
                        registration_date=datetime(2024, 1, 2, 8, 0)),
    ]
    _, buffer = export_patients(patients)
    wb = load_workbook(buffer)
    rows = _rows(wb["Patients"])
    assert rows[1][:7] == [1, "Ali Khan", 9, "Male", "N/A", "N/A", "Thalassemic"]
    assert rows[1][8] == "Jan 02, 2024"
    assert _summary(wb)["Total Patients"] == 1
