"""LabourPayment — cash handed over by a labour person against a shipment.

Feeds the per-person running balance on the settlements screen.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from freightdesk.database import Base


class LabourPayment(Base):
    __tablename__ = "labour_payments"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Links ────────────────────────────────────────────────
    labour_person_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("labour_persons.id"), nullable=False, index=True
    )
    shipment_reference: Mapped[str] = mapped_column(
        String(50), ForeignKey("shipments.register_number"), nullable=False
    )

    # ── Amount ───────────────────────────────────────────────
    amount_paid: Mapped[float] = mapped_column(Float, nullable=False)
    # CASH | BANK | OTHER
    payment_method: Mapped[str] = mapped_column(String(50), default="CASH")

    payment_date: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
