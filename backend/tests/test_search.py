from types import SimpleNamespace

import pytest

from app.services.search import MEDICINE_FIELDS, REPORT_FIELDS, search_filtered


def _patient(pid, name, phone, category):
    return SimpleNamespace(patient_id=pid, name=name, phone_number=phone, category=category)


PATIENTS = [
    _patient(1, "Ali Khan", "0300111222", "Paid"),
    _patient(2, "Sara Baig", "0321555666", "Thalassemic"),
    _patient(13, "Bilal Ali", None, None),
]


def _names(items):
    return [p.name for p in items]


class TestPatientSearch:
    def test_empty_spec_returns_everything_in_order(self):
        assert _names(search_filtered(PATIENTS, {})) == _names(PATIENTS)
        assert _names(search_filtered(PATIENTS, None)) == _names(PATIENTS)

    def test_blank_text_field_is_unconstrained(self):
        assert len(search_filtered(PATIENTS, {"name": "", "phone": ""})) == 3

    def test_name_is_case_insensitive_substring(self):
        assert _names(search_filtered(PATIENTS, {"name": "ALI"})) == ["Ali Khan", "Bilal Ali"]

    def test_fields_are_anded(self):
        assert _names(search_filtered(PATIENTS, {"name": "ali", "id": "13"})) == ["Bilal Ali"]

    def test_search_ors_name_number_and_phone(self):
        assert _names(search_filtered(PATIENTS, {"search": "555"})) == ["Sara Baig"]
        assert _names(search_filtered(PATIENTS, {"search": "13"})) == ["Bilal Ali"]
        assert _names(search_filtered(PATIENTS, {"search": "sara"})) == ["Sara Baig"]

    def test_category_all_includes_patients_without_category(self):
        assert len(search_filtered(PATIENTS, {"category": "all"})) == 3

    def test_category_empty_string_matches_nothing(self):
        # Only the "all" sentinel lifts the category constraint
        assert search_filtered(PATIENTS, {"category": ""}) == []

    def test_category_match_ignores_case(self):
        assert _names(search_filtered(PATIENTS, {"category": "thalassemic"})) == ["Sara Baig"]

    def test_unknown_field_raises(self):
        with pytest.raises(ValueError):
            search_filtered(PATIENTS, {"ward": "3"})


def test_medicine_search_covers_category_and_serial():
    medicines = [
        SimpleNamespace(name="Paracetamol", category="tablet", serial_number=1),
        SimpleNamespace(name="Folic Acid", category="syrup", serial_number=22),
    ]
    assert [m.name for m in search_filtered(medicines, {"search": "SYR"}, MEDICINE_FIELDS)] == ["Folic Acid"]
    assert [m.name for m in search_filtered(medicines, {"search": "22"}, MEDICINE_FIELDS)] == ["Folic Acid"]
    assert len(search_filtered(medicines, {"category": "all"}, MEDICINE_FIELDS)) == 2


def test_report_search_reaches_into_patient():
    reports = [
        SimpleNamespace(report_number=2001, created_by_role="reception", patient=PATIENTS[0]),
        SimpleNamespace(report_number=None, created_by_role="doctor", patient=PATIENTS[1]),
    ]
    assert [r.report_number for r in search_filtered(reports, {"search": "2001"}, REPORT_FIELDS)] == [2001]
    assert [r.created_by_role for r in search_filtered(reports, {"search": "baig"}, REPORT_FIELDS)] == ["doctor"]
    assert len(search_filtered(reports, {"role": "all"}, REPORT_FIELDS)) == 2
    assert len(search_filtered(reports, {"role": ""}, REPORT_FIELDS)) == 2
    assert [r.report_number for r in search_filtered(reports, {"role": "reception"}, REPORT_FIELDS)] == [2001]
