"""Unsettled-assignment reminders.

Endpoints:
    GET /api/labour-reminders     Assignments still in progress, soonest due first
"""

from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from freightdesk.database import get_db
from freightdesk.models.labour_assignment import LabourAssignment, RETIRED_STATUSES
from freightdesk.schemas.labour import ReminderOut

router = APIRouter()


@router.get("", response_model=list[ReminderOut])
async def list_reminders(db: AsyncSession = Depends(get_db)):
    """Every assignment not yet settled or cancelled.

    Ordered by due date (undated last), then most recently assigned.
    """
    result = await db.execute(
        select(LabourAssignment)
        .where(LabourAssignment.status.notin_(RETIRED_STATUSES))
        .order_by(
            LabourAssignment.due_date.is_(None),
            LabourAssignment.due_date.asc(),
            LabourAssignment.assigned_date.desc(),
        )
    )
    today = datetime.utcnow().date()

    return [
        ReminderOut(
            id=a.id,
            labour_person_id=a.labour_person_id,
            labour_person_name=a.labour_person.name if a.labour_person else None,
            shipment_reference=a.shipment_reference,
            status=a.status,
            assigned_date=a.assigned_date,
            due_date=a.due_date,
            is_overdue=a.due_date is not None and today > a.due_date,
        )
        for a in result.scalars().all()
    ]
