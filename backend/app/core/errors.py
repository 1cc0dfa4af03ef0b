"""
Error taxonomy for the clinic core.

Business-rule and integrity errors are raised by the pure services; store
failures are wrapped once at the data-store boundary as FetchError.
"""
from typing import Optional


class ClinicError(Exception):
    """Base class for every error the clinic core raises on purpose."""


class InsufficientStockError(ClinicError):
    """A removal asked for more units than the ledger currently holds."""

    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock: requested {requested}, only {available} available"
        )


class DataIntegrityError(ClinicError):
    """
    Derived data contradicts an invariant (negative stock, dangling foreign key).
    Reported and logged; the affected record is left out of aggregates.
    """

    def __init__(self, message: str, record_type: str, record_id: Optional[str] = None):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(message)

    def as_dict(self) -> dict:
        return {
            "message": str(self),
            "record_type": self.record_type,
            "record_id": self.record_id,
        }


class FetchError(ClinicError):
    """The backing store failed; surfaced verbatim, never retried."""

    def __init__(self, message: str, table: Optional[str] = None):
        self.table = table
        super().__init__(message)


class NotFoundError(ClinicError):
    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found: {identifier}")


class AuthError(ClinicError):
    """Credentials rejected or session no longer valid."""
