from datetime import datetime
from sqlalchemy import Column, String, Integer, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin, generate_uuid


class MedicineCategory:
    TABLET = "tablet"
    SYRUP = "syrup"
    INJECTION = "injection"
    GEL = "gel"
    OINTMENT = "ointment"
    CREAM = "cream"
    SUSPENSION = "suspension"
    DROPS = "drops"
    SACHET = "sachet"
    INFUSION = "infusion"
    TRANSFUSION = "transfusion"
    LOTION = "lotion"

    ALL = [
        TABLET, SYRUP, INJECTION, GEL, OINTMENT, CREAM,
        SUSPENSION, DROPS, SACHET, INFUSION, TRANSFUSION, LOTION,
    ]


class StockType:
    ADD = "add"
    REMOVE = "remove"

    ALL = [ADD, REMOVE]


class Medicine(Base, TimestampMixin):
    __tablename__ = "medicines"

    id = Column(String, primary_key=True, default=generate_uuid)
    serial_number = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False, index=True)
    category = Column(String(30), nullable=False)
    # Cached projection of the stock ledger; recomputed on every read
    total_quantity = Column(Integer, nullable=False, default=0)
    expiry_date = Column(Date, nullable=True)
    last_updated = Column(DateTime, default=datetime.utcnow)

    stock_events = relationship(
        "StockEvent",
        back_populates="medicine",
        cascade="all, delete-orphan",
        order_by="StockEvent.created_at",
    )


class StockEvent(Base, TimestampMixin):
    """Append-only ledger entry. Never updated once written."""
    __tablename__ = "medicine_stock_history"

    id = Column(String, primary_key=True, default=generate_uuid)
    medicine_id = Column(String, ForeignKey("medicines.id"), nullable=False, index=True)
    stock_type = Column(String(10), nullable=False)
    quantity = Column(Integer, nullable=False)
    expiry_date = Column(Date, nullable=True)
    created_by = Column(String(100), nullable=True)
    user_type = Column(String(20), nullable=True)  # actor role, or "patient_usage"
    usage_id = Column(String, ForeignKey("medicine_usage.id"), nullable=True)

    medicine = relationship("Medicine", back_populates="stock_events")
