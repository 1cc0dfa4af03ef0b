from datetime import datetime, timedelta
from itertools import permutations
from types import SimpleNamespace

import pytest

from app.core.errors import InsufficientStockError
from app.services.stock_ledger import (
    derive_quantity,
    running_balance,
    signed_quantity,
    stock_status,
    validate_removal,
)

T0 = datetime(2024, 3, 1, 9, 0)


def _event(stock_type, quantity, minutes=0, **extra):
    return SimpleNamespace(
        id=f"{stock_type}-{quantity}-{minutes}",
        stock_type=stock_type,
        quantity=quantity,
        created_at=T0 + timedelta(minutes=minutes),
        **extra,
    )


# ---------------------------------------------------------------------------
# derive_quantity
# ---------------------------------------------------------------------------

class TestDeriveQuantity:
    def test_adds_minus_removes(self):
        events = [_event("add", 10), _event("remove", 3, 1), _event("add", 5, 2)]
        assert derive_quantity(events) == 12

    def test_no_events_is_zero(self):
        assert derive_quantity([]) == 0

    def test_order_does_not_matter(self):
        events = [_event("add", 10), _event("remove", 3, 1), _event("add", 5, 2), _event("remove", 4, 3)]
        results = {derive_quantity(list(p)) for p in permutations(events)}
        assert results == {8}

    def test_negative_result_is_returned_not_clamped(self):
        events = [_event("add", 2), _event("remove", 5, 1)]
        assert derive_quantity(events) == -3

    def test_unknown_stock_type_raises(self):
        with pytest.raises(ValueError):
            signed_quantity(_event("transfer", 4))


# ---------------------------------------------------------------------------
# validate_removal
# ---------------------------------------------------------------------------

class TestValidateRemoval:
    def test_removing_exactly_the_stock_is_allowed(self):
        validate_removal(12, 12)

    def test_removing_more_than_stock_raises(self):
        with pytest.raises(InsufficientStockError) as exc_info:
            validate_removal(12, 13)
        assert exc_info.value.available == 12
        assert exc_info.value.requested == 13

    def test_empty_stock_rejects_any_removal(self):
        with pytest.raises(InsufficientStockError):
            validate_removal(0, 1)


# ---------------------------------------------------------------------------
# running_balance / stock_status
# ---------------------------------------------------------------------------

def test_running_balance_replays_oldest_first():
    events = [_event("add", 5, 20), _event("add", 10, 0), _event("remove", 3, 10)]
    movements = running_balance(events)
    assert [m.quantity for m in movements] == [10, 3, 5]
    assert [m.balance_after for m in movements] == [10, 7, 12]


def test_running_balance_puts_untimestamped_events_first():
    undated = SimpleNamespace(id="x", stock_type="add", quantity=4, created_at=None)
    movements = running_balance([_event("remove", 1, 5), undated])
    assert movements[0].event_id == "x"
    assert movements[-1].balance_after == 3


def test_running_balance_carries_usage_link():
    movements = running_balance([_event("remove", 2, 0, usage_id="u-1", user_type="patient_usage")])
    assert movements[0].usage_id == "u-1"
    assert movements[0].user_type == "patient_usage"


@pytest.mark.parametrize(
    "quantity,expected",
    [(-2, "out_of_stock"), (0, "out_of_stock"), (9, "low_stock"), (10, "in_stock"), (250, "in_stock")],
)
def test_stock_status_thresholds(quantity, expected):
    assert stock_status(quantity, 10) == expected
