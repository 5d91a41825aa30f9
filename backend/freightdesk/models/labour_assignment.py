"""LabourAssignment — one labour person delivering one shipment and collecting for it.

Lifecycle:  assigned → delivered → collected → settled
            (any non-terminal state) → cancelled

Rows are only ever mutated through the settlement engine, which writes
status and money fields together and bumps `version` on every save.
Settled and cancelled rows are retired from active views but never deleted.
"""

import enum
import uuid
from datetime import date, datetime

from sqlalchemy import (
    Date, DateTime, Enum as SAEnum, Float, ForeignKey, Index, Integer, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from freightdesk.database import Base


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    DELIVERED = "DELIVERED"
    COLLECTED = "COLLECTED"
    SETTLED = "SETTLED"
    CANCELLED = "CANCELLED"


RETIRED_STATUSES = (AssignmentStatus.SETTLED, AssignmentStatus.CANCELLED)

# Partial-index predicate: at most one active assignment per shipment
ACTIVE_PREDICATE = text("status NOT IN ('SETTLED', 'CANCELLED')")


class LabourAssignment(Base):
    __tablename__ = "labour_assignments"
    __table_args__ = (
        Index(
            "uq_labour_assignments_active_shipment",
            "shipment_reference",
            unique=True,
            postgresql_where=ACTIVE_PREDICATE,
            sqlite_where=ACTIVE_PREDICATE,
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Links ────────────────────────────────────────────────
    labour_person_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("labour_persons.id"), nullable=False, index=True
    )
    shipment_reference: Mapped[str] = mapped_column(
        String(50), ForeignKey("shipments.register_number"), nullable=False, index=True
    )

    # ── Status ───────────────────────────────────────────────
    status: Mapped[AssignmentStatus] = mapped_column(
        SAEnum(AssignmentStatus), default=AssignmentStatus.ASSIGNED, nullable=False, index=True
    )

    # ── Delivery expenses ────────────────────────────────────
    station_expense: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    bility_expense: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    station_labour: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    cart_labour: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # Always the sum of the four fields above
    total_expenses: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # ── Collection ───────────────────────────────────────────
    collected_amount: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # ── Dates ────────────────────────────────────────────────
    assigned_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
    due_date: Mapped[date | None] = mapped_column(Date)
    delivered_date: Mapped[datetime | None] = mapped_column(DateTime)
    settled_date: Mapped[datetime | None] = mapped_column(DateTime)

    # ── Metadata ─────────────────────────────────────────────
    notes: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    labour_person = relationship("LabourPerson", lazy="selectin")
    shipment = relationship("Shipment", lazy="selectin")
