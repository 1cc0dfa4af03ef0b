from datetime import datetime
from types import SimpleNamespace

import pytest

from app.services.usage_grouping import (
    ORPHAN_DROP,
    ORPHAN_SURFACE,
    UsageFilters,
    calendar_day,
    group_by_patient_and_day,
    instant,
    paginate,
    resolve_usage,
)

PATIENTS = {
    "p1": SimpleNamespace(id="p1", patient_id=7, name="Ali Khan"),
    "p2": SimpleNamespace(id="p2", patient_id=12, name="Sara Baig"),
}
MEDICINES = {
    "m1": SimpleNamespace(id="m1", name="Paracetamol"),
    "m2": SimpleNamespace(id="m2", name="Folic Acid"),
}


def _record(rid, patient_id, medicine_id, quantity, usage_date):
    return SimpleNamespace(
        id=rid,
        patient_id=patient_id,
        medicine_id=medicine_id,
        quantity_used=quantity,
        usage_date=usage_date,
        created_by="doc",
    )


def _resolved(*records):
    resolved, _ = resolve_usage(records, PATIENTS, MEDICINES, ORPHAN_DROP)
    return resolved


class TestGroupByPatientAndDay:
    def setup_method(self):
        self.records = _resolved(
            _record("u1", "p1", "m1", 2, "2024-03-05T09:15:00"),
            _record("u2", "p1", "m2", 1, "2024-03-05T16:40:00"),
            _record("u3", "p2", "m1", 4, "2024-03-06T11:00:00"),
        )

    def test_one_group_per_patient_per_day(self):
        groups = group_by_patient_and_day(self.records)
        assert len(groups) == 2
        ali = next(g for g in groups if g.patient.id == "p1")
        assert [line.medicine.name for line in ali.medicines] == ["Paracetamol", "Folic Acid"]
        assert ali.total_medicines == 3

    def test_newest_group_first(self):
        groups = group_by_patient_and_day(self.records)
        assert [g.day for g in groups] == ["2024-03-06", "2024-03-05"]

    def test_same_patient_on_two_days_gives_two_groups(self):
        records = self.records + _resolved(_record("u4", "p1", "m1", 1, "2024-03-07T08:00:00"))
        groups = group_by_patient_and_day(records)
        assert len([g for g in groups if g.patient.id == "p1"]) == 2

    def test_same_medicine_twice_in_a_day_stays_two_lines(self):
        records = _resolved(
            _record("a", "p1", "m1", 2, "2024-03-05T09:00:00"),
            _record("b", "p1", "m1", 3, "2024-03-05T18:00:00"),
        )
        (group,) = group_by_patient_and_day(records)
        assert [line.quantity for line in group.medicines] == [2, 3]
        assert group.total_medicines == 5

    def test_datetime_values_group_by_calendar_day(self):
        records = _resolved(
            _record("a", "p2", "m1", 1, datetime(2024, 4, 1, 0, 5)),
            _record("b", "p2", "m2", 1, datetime(2024, 4, 1, 23, 55)),
        )
        (group,) = group_by_patient_and_day(records)
        assert group.day == "2024-04-01"

    def test_date_filter_is_a_prefix_match(self):
        month = group_by_patient_and_day(self.records, UsageFilters(date_filter="2024-03"))
        day = group_by_patient_and_day(self.records, UsageFilters(date_filter="2024-03-06"))
        assert len(month) == 2
        assert [g.patient.id for g in day] == ["p2"]

    def test_search_matches_patient_name_case_insensitively(self):
        groups = group_by_patient_and_day(self.records, UsageFilters(search_term="sara"))
        assert [g.patient.id for g in groups] == ["p2"]

    def test_search_matches_medicine_name(self):
        groups = group_by_patient_and_day(self.records, UsageFilters(search_term="FOLIC"))
        (group,) = groups
        # Filtering happens per record, so only the matching line survives
        assert [line.medicine.name for line in group.medicines] == ["Folic Acid"]

    def test_search_matches_patient_number_substring(self):
        groups = group_by_patient_and_day(self.records, UsageFilters(search_term="2"))
        assert {g.patient.id for g in groups} == {"p2"}

    def test_blank_search_is_ignored(self):
        assert len(group_by_patient_and_day(self.records, UsageFilters(search_term="   "))) == 2

    def test_ordering_compares_offsets_in_utc(self):
        # 01:00 at +05:00 is 20:00 UTC on the 4th, two hours before the other visit
        records = _resolved(
            _record("a", "p1", "m1", 1, "2024-03-05T01:00:00+05:00"),
            _record("b", "p2", "m1", 1, "2024-03-04T22:00:00Z"),
        )
        groups = group_by_patient_and_day(records)
        assert [g.patient.id for g in groups] == ["p2", "p1"]
        # Grouping still keys on the stored date segment
        assert [g.day for g in groups] == ["2024-03-04", "2024-03-05"]

    def test_mixed_datetime_and_text_dates_sort_together(self):
        records = _resolved(
            _record("a", "p1", "m1", 1, datetime(2024, 3, 5, 9, 0)),
            _record("b", "p2", "m1", 1, "2024-03-06T08:00:00"),
        )
        assert [g.patient.id for g in group_by_patient_and_day(records)] == ["p2", "p1"]


class TestResolveUsage:
    def setup_method(self):
        self.records = [
            _record("ok", "p1", "m1", 1, "2024-03-05T09:00:00"),
            _record("no-patient", "gone", "m1", 1, "2024-03-05T09:00:00"),
            _record("no-medicine", "p1", "deleted", 1, "2024-03-05T09:00:00"),
        ]

    def test_drop_policy_excludes_orphans_silently(self):
        resolved, issues = resolve_usage(self.records, PATIENTS, MEDICINES, ORPHAN_DROP)
        assert [r.id for r in resolved] == ["ok"]
        assert issues == []

    def test_surface_policy_reports_each_orphan(self):
        resolved, issues = resolve_usage(self.records, PATIENTS, MEDICINES, ORPHAN_SURFACE)
        assert [r.id for r in resolved] == ["ok"]
        assert sorted(i.record_id for i in issues) == ["no-medicine", "no-patient"]
        assert all(i.record_type == "medicine_usage" for i in issues)

    def test_unknown_policy_raises(self):
        with pytest.raises(ValueError):
            resolve_usage(self.records, PATIENTS, MEDICINES, "ignore")


class TestPaginate:
    def test_slices_one_indexed_pages(self):
        view = paginate(list(range(25)), page=3, page_size=10)
        assert view.items == [20, 21, 22, 23, 24]
        assert view.total_items == 25
        assert view.total_pages == 3

    def test_page_past_the_end_is_empty(self):
        view = paginate(list(range(5)), page=4, page_size=10)
        assert view.items == []
        assert view.total_pages == 1

    def test_no_groups_means_no_pages(self):
        assert paginate([], page=1, page_size=10).total_pages == 0

    @pytest.mark.parametrize("page,page_size", [(0, 10), (1, 0)])
    def test_rejects_non_positive_arguments(self, page, page_size):
        with pytest.raises(ValueError):
            paginate([1, 2], page=page, page_size=page_size)


def test_calendar_day_keeps_the_stored_date_segment():
    assert calendar_day("2024-03-05T23:30:00+05:00") == "2024-03-05"
    assert calendar_day(None) == ""


def test_instant_normalises_to_naive_utc():
    assert instant("2024-03-05T01:00:00+05:00") == datetime(2024, 3, 4, 20, 0)
    assert instant("2024-03-05") == datetime(2024, 3, 5)
    assert instant("not a date") == datetime.min
    assert instant(None) == datetime.min


def test_one_patient_across_two_days():
    records = _resolved(
        _record("a", "p1", "m1", 2, "2024-03-01"),
        _record("b", "p1", "m2", 1, "2024-03-01"),
        _record("c", "p1", "m1", 3, "2024-03-02"),
    )
    groups = group_by_patient_and_day(records)
    assert [(g.day, g.total_medicines, len(g.medicines)) for g in groups] == [
        ("2024-03-02", 3, 1),
        ("2024-03-01", 3, 2),
    ]
    assert len(group_by_patient_and_day(records, UsageFilters(date_filter="2024-03"))) == 2
    (only,) = group_by_patient_and_day(records, UsageFilters(date_filter="2024-03-02"))
    assert only.day == "2024-03-02"
