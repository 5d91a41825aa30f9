"""Shipment — read-only reference to a registered consignment.

Shipments are registered and priced by the booking desk; this service only
reads `total_charges` (the gross receivable) and `delivery_date` when
assigning and settling labour.
"""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from freightdesk.database import Base


class Shipment(Base):
    __tablename__ = "shipments"

    register_number: Mapped[str] = mapped_column(String(50), primary_key=True)
    bility_number: Mapped[str | None] = mapped_column(String(50), index=True)
    total_charges: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    # Set once a delivery has been recorded by the delivery desk
    delivery_date: Mapped[date | None] = mapped_column(Date)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
