"""
Stock Ledger - current medicine quantity derived from add/remove events.

The ledger is the only source of truth for stock. Medicine.total_quantity is a
cached hint that is recomputed from here on every read.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from ..core.errors import InsufficientStockError
from ..models.medicine import StockType


@dataclass
class StockMovement:
    """One ledger event with the balance right after it was applied."""
    event_id: Optional[str]
    stock_type: str
    quantity: int
    balance_after: int
    created_at: Optional[datetime]
    expiry_date: Optional[object] = None
    created_by: Optional[str] = None
    user_type: Optional[str] = None
    usage_id: Optional[str] = None
    patient_name: Optional[str] = None


def signed_quantity(event) -> int:
    """Contribution of a single event to the stock level."""
    if event.stock_type == StockType.ADD:
        return event.quantity
    if event.stock_type == StockType.REMOVE:
        return -event.quantity
    raise ValueError(f"Unknown stock_type: {event.stock_type!r}")


def derive_quantity(events: Iterable) -> int:
    """
    Fold stock events into the current quantity.
    Order-independent; a negative result is returned as-is for the caller to flag.
    """
    total = 0
    for event in events:
        total += signed_quantity(event)
    return total


def validate_removal(current_quantity: int, requested_quantity: int) -> None:
    """Raise InsufficientStockError if the removal would exceed available stock."""
    if requested_quantity > current_quantity:
        raise InsufficientStockError(available=current_quantity, requested=requested_quantity)


def running_balance(events: Iterable) -> List[StockMovement]:
    """
    Replay events oldest first and record the balance after each one.
    Events without a timestamp sort before timestamped ones.
    """
    ordered = sorted(events, key=lambda e: (e.created_at is not None, e.created_at or datetime.min))
    balance = 0
    movements: List[StockMovement] = []
    for event in ordered:
        balance += signed_quantity(event)
        movements.append(
            StockMovement(
                event_id=getattr(event, "id", None),
                stock_type=event.stock_type,
                quantity=event.quantity,
                balance_after=balance,
                created_at=event.created_at,
                expiry_date=getattr(event, "expiry_date", None),
                created_by=getattr(event, "created_by", None),
                user_type=getattr(event, "user_type", None),
                usage_id=getattr(event, "usage_id", None),
            )
        )
    return movements


def stock_status(quantity: int, low_stock_threshold: int) -> str:
    if quantity <= 0:
        return "out_of_stock"
    if quantity < low_stock_threshold:
        return "low_stock"
    return "in_stock"
