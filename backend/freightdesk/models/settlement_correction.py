"""SettlementCorrection — one operator-confirmed revision of a collected amount.

Written every time COLLECT runs against an already-collected assignment, so
the amount a labour person was first recorded as handing over is never lost.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from freightdesk.database import Base


class SettlementCorrection(Base):
    __tablename__ = "settlement_corrections"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    assignment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("labour_assignments.id"), nullable=False, index=True
    )

    old_collected_amount: Mapped[float] = mapped_column(Float, nullable=False)
    new_collected_amount: Mapped[float] = mapped_column(Float, nullable=False)
    # Signed balance the operator was shown before confirming
    remaining_before: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
