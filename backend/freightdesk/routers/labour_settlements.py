"""Labour settlement balances and payment recording.

Endpoints:
    GET  /api/labour-settlements            Per-person amount due, paid and balance
    POST /api/labour-settlements/payments   Record cash handed over by a labour person

A person's amount due is the sum, over their non-cancelled assignments, of
the shipment charges plus the delivery expenses recorded at collection.
"""

import logging
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from freightdesk.database import get_db
from freightdesk.models.labour_assignment import AssignmentStatus, LabourAssignment
from freightdesk.models.labour_payment import LabourPayment
from freightdesk.models.labour_person import LabourPerson
from freightdesk.models.shipment import Shipment
from freightdesk.schemas.labour import (
    LabourPaymentCreate,
    LabourPaymentOut,
    LabourSettlementSummary,
    SettlementAssignmentLine,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _assignment_line(a: LabourAssignment) -> SettlementAssignmentLine:
    charges = float(a.shipment.total_charges or 0) if a.shipment else 0.0
    expenses = float(a.total_expenses or 0)
    return SettlementAssignmentLine(
        id=a.id,
        shipment_reference=a.shipment_reference,
        bility_number=a.shipment.bility_number if a.shipment else None,
        shipment_charges=round(charges, 2),
        total_expenses=round(expenses, 2),
        total_due=round(charges + expenses, 2),
        collected_amount=round(float(a.collected_amount or 0), 2),
        status=a.status,
    )


# ── GET /api/labour-settlements ──────────────────────────────

@router.get("", response_model=list[LabourSettlementSummary])
async def list_settlements(
    labour_person_id: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Running balance for each labour person (or one, if filtered)."""
    person_stmt = select(LabourPerson).order_by(LabourPerson.name.asc())
    if labour_person_id:
        person_stmt = person_stmt.where(LabourPerson.id == labour_person_id)
    persons = (await db.execute(person_stmt)).scalars().all()
    if not persons:
        return []

    person_ids = [p.id for p in persons]

    assignment_result = await db.execute(
        select(LabourAssignment)
        .where(
            LabourAssignment.labour_person_id.in_(person_ids),
            LabourAssignment.status != AssignmentStatus.CANCELLED,
        )
        .order_by(LabourAssignment.assigned_date.asc())
    )
    lines_by_person: dict[str, list[SettlementAssignmentLine]] = defaultdict(list)
    for a in assignment_result.scalars().all():
        lines_by_person[a.labour_person_id].append(_assignment_line(a))

    payment_result = await db.execute(
        select(LabourPayment)
        .where(LabourPayment.labour_person_id.in_(person_ids))
        .order_by(LabourPayment.payment_date.asc())
    )
    payments_by_person: dict[str, list[LabourPaymentOut]] = defaultdict(list)
    for p in payment_result.scalars().all():
        payments_by_person[p.labour_person_id].append(LabourPaymentOut.model_validate(p))

    summaries = []
    for person in persons:
        lines = lines_by_person[person.id]
        payments = payments_by_person[person.id]
        total_due = sum(line.total_due for line in lines)
        total_paid = sum(p.amount_paid for p in payments)
        summaries.append(LabourSettlementSummary(
            id=person.id,
            name=person.name,
            contact_info=person.contact_info,
            total_due=round(total_due, 2),
            total_paid=round(total_paid, 2),
            balance=round(total_due - total_paid, 2),
            assignments=lines,
            payment_history=payments,
        ))
    return summaries


# ── POST /api/labour-settlements/payments ────────────────────

@router.post("/payments", response_model=LabourPaymentOut, status_code=status.HTTP_201_CREATED)
async def record_payment(
    body: LabourPaymentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record a payment from a labour person against one of their shipments."""
    person = (
        await db.execute(select(LabourPerson).where(LabourPerson.id == body.labour_person_id))
    ).scalar_one_or_none()
    if not person:
        raise HTTPException(status_code=404, detail="Labour person not found")

    shipment = (
        await db.execute(select(Shipment).where(Shipment.register_number == body.shipment_id))
    ).scalar_one_or_none()
    if not shipment:
        raise HTTPException(status_code=404, detail="Shipment not found")

    assignment = (
        await db.execute(
            select(LabourAssignment.id).where(
                LabourAssignment.labour_person_id == body.labour_person_id,
                LabourAssignment.shipment_reference == body.shipment_id,
            ).limit(1)
        )
    ).scalar_one_or_none()
    if not assignment:
        raise HTTPException(
            status_code=404,
            detail="No assignment found for this labour person and shipment",
        )

    payment = LabourPayment(
        labour_person_id=body.labour_person_id,
        shipment_reference=body.shipment_id,
        amount_paid=body.amount_paid,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    db.add(payment)
    await db.flush()

    logger.info(
        "Recorded %.2f %s payment from labour person %s for shipment %s",
        payment.amount_paid, payment.payment_method, person.id, shipment.register_number,
    )
    return LabourPaymentOut.model_validate(payment)
