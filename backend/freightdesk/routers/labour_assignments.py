"""Labour assignment lifecycle and settlement.

Endpoints:
    POST /api/labour-assignments                         Assign shipments to a labour person
    GET  /api/labour-assignments                         List assignments (active by default)
    GET  /api/labour-assignments/report                  Charges / expenses / discount report
    GET  /api/labour-assignments/{id}                    Single assignment
    GET  /api/labour-assignments/{id}/reconciliation     Amount due vs collected
    GET  /api/labour-assignments/{id}/corrections        Collection correction history
    POST /api/labour-assignments/{id}/deliver            ASSIGNED  → DELIVERED
    POST /api/labour-assignments/{id}/collect            DELIVERED → COLLECTED (or correction)
    POST /api/labour-assignments/{id}/settle             COLLECTED → SETTLED
    POST /api/labour-assignments/{id}/cancel             any non-terminal → CANCELLED

State changes go through SettlementEngine; everything else here is a read.
"""

import logging
from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from freightdesk.config import settings
from freightdesk.database import get_db
from freightdesk.middleware.exceptions import ResourceNotFoundError
from freightdesk.models.labour_assignment import (
    AssignmentStatus,
    LabourAssignment,
    RETIRED_STATUSES,
)
from freightdesk.models.labour_person import LabourPerson
from freightdesk.models.settlement_correction import SettlementCorrection
from freightdesk.models.shipment import Shipment
from freightdesk.schemas.common import PaginatedResponse
from freightdesk.schemas.labour import (
    AssignmentReportRow,
    CollectRequest,
    CorrectionOut,
    LabourAssignmentCreate,
    LabourAssignmentOut,
    ReconciliationOut,
    TransitionRequest,
)
from freightdesk.services.assignment_store import SqlAssignmentStore, SqlShipmentLookup
from freightdesk.services.settlement import SettlementEngine

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def get_settlement_engine(db: AsyncSession = Depends(get_db)) -> SettlementEngine:
    """Build an engine bound to the request's session."""
    return SettlementEngine(
        SqlAssignmentStore(db),
        SqlShipmentLookup(db),
        tolerance=settings.settlement_tolerance,
    )


def _already_assigned(shipment_ids) -> str:
    return (
        f"Some shipments are already assigned and not yet settled: "
        f"{', '.join(shipment_ids)}. Please settle them first."
    )


def assigned_within(start_date: date | None, end_date: date | None) -> list:
    """`assigned_date` filters covering whole calendar days, both ends inclusive."""
    clauses = []
    if start_date:
        clauses.append(LabourAssignment.assigned_date >= datetime.combine(start_date, time.min))
    if end_date:
        clauses.append(LabourAssignment.assigned_date <= datetime.combine(end_date, time.max))
    return clauses


async def _get_assignment_or_404(db: AsyncSession, assignment_id: str) -> LabourAssignment:
    result = await db.execute(
        select(LabourAssignment).where(LabourAssignment.id == assignment_id)
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise ResourceNotFoundError("Labour assignment", assignment_id)
    return assignment


# ── POST /api/labour-assignments ─────────────────────────────

@router.post("", response_model=list[LabourAssignmentOut], status_code=status.HTTP_201_CREATED)
async def create_assignments(
    body: LabourAssignmentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Assign one or more undelivered shipments to a labour person."""
    result = await db.execute(
        select(LabourPerson).where(LabourPerson.id == body.labour_person_id)
    )
    person = result.scalar_one_or_none()
    if not person:
        raise ResourceNotFoundError("Labour person", body.labour_person_id)

    # Only shipments with no recorded delivery can be handed to labour.  The
    # rows stay locked until commit so concurrent creates for the same
    # shipment run one after the other.
    result = await db.execute(
        select(Shipment.register_number)
        .where(
            Shipment.register_number.in_(body.shipment_ids),
            Shipment.delivery_date.is_(None),
        )
        .order_by(Shipment.register_number)
        .with_for_update()
    )
    assignable = {row[0] for row in result.all()}
    unavailable = [sid for sid in body.shipment_ids if sid not in assignable]
    if unavailable:
        raise HTTPException(
            status_code=400,
            detail=f"Shipments not found or already delivered: {', '.join(unavailable)}",
        )

    # A shipment may only be in one active workflow at a time
    result = await db.execute(
        select(LabourAssignment.shipment_reference).where(
            LabourAssignment.shipment_reference.in_(body.shipment_ids),
            LabourAssignment.status.notin_(RETIRED_STATUSES),
        )
    )
    pending = sorted({row[0] for row in result.all()})
    if pending:
        raise HTTPException(status_code=409, detail=_already_assigned(pending))

    assignments = [
        LabourAssignment(
            labour_person_id=person.id,
            shipment_reference=shipment_id,
            status=AssignmentStatus.ASSIGNED,
            due_date=body.due_date,
            notes=body.notes,
        )
        for shipment_id in body.shipment_ids
    ]
    db.add_all(assignments)
    try:
        await db.flush()
    except IntegrityError:
        # Lost to the one-active-assignment-per-shipment index
        raise HTTPException(status_code=409, detail=_already_assigned(body.shipment_ids))

    logger.info(
        "Assigned %d shipment(s) to labour person %s", len(assignments), person.id
    )
    return [LabourAssignmentOut.model_validate(a) for a in assignments]


# ── GET /api/labour-assignments ──────────────────────────────

@router.get("", response_model=PaginatedResponse[LabourAssignmentOut])
async def list_assignments(
    labour_person_id: str | None = Query(None),
    status_filter: AssignmentStatus | None = Query(None, alias="status"),
    include_retired: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List assignments, newest first.

    Settled and cancelled assignments are hidden unless `include_retired`
    is set or they are asked for by `status`.
    """
    base_stmt = select(LabourAssignment)
    if labour_person_id:
        base_stmt = base_stmt.where(LabourAssignment.labour_person_id == labour_person_id)
    if status_filter:
        base_stmt = base_stmt.where(LabourAssignment.status == status_filter)
    elif not include_retired:
        base_stmt = base_stmt.where(LabourAssignment.status.notin_(RETIRED_STATUSES))

    total = (
        await db.execute(select(func.count()).select_from(base_stmt.subquery()))
    ).scalar() or 0

    result = await db.execute(
        base_stmt.order_by(LabourAssignment.assigned_date.desc())
        .limit(limit)
        .offset(offset)
    )
    items = [LabourAssignmentOut.model_validate(a) for a in result.scalars().all()]
    return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)


# ── GET /api/labour-assignments/report ───────────────────────

@router.get("/report", response_model=list[AssignmentReportRow])
async def assignment_report(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    status_filter: AssignmentStatus | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
):
    """Per-assignment receivable, collection and implied discount.

    Date bounds apply to `assigned_date` and include whole calendar days.
    """
    stmt = select(LabourAssignment).where(*assigned_within(start_date, end_date))
    if status_filter:
        stmt = stmt.where(LabourAssignment.status == status_filter)

    result = await db.execute(stmt.order_by(LabourAssignment.assigned_date.desc()))

    rows = []
    for a in result.scalars().all():
        charges = float(a.shipment.total_charges or 0) if a.shipment else 0.0
        expenses = float(a.total_expenses or 0)
        collected = float(a.collected_amount or 0)
        receivable = charges + expenses

        # Anything collected short of the receivable was given away as discount
        discount = 0.0
        if a.status != AssignmentStatus.ASSIGNED and collected > 0:
            discount = max(0.0, receivable - collected)

        rows.append(AssignmentReportRow(
            id=a.id,
            assigned_date=a.assigned_date,
            status=a.status,
            labour_person_name=a.labour_person.name if a.labour_person else None,
            shipment_reference=a.shipment_reference,
            bility_number=a.shipment.bility_number if a.shipment else None,
            shipment_charges=round(charges, 2),
            total_expenses=round(expenses, 2),
            total_receivable=round(receivable, 2),
            net_collected=round(collected, 2),
            discount_given=round(discount, 2),
        ))
    return rows


# ── GET /api/labour-assignments/{id} ─────────────────────────

@router.get("/{assignment_id}", response_model=LabourAssignmentOut)
async def get_assignment(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    assignment = await _get_assignment_or_404(db, assignment_id)
    return LabourAssignmentOut.model_validate(assignment)


@router.get("/{assignment_id}/reconciliation", response_model=ReconciliationOut)
async def get_reconciliation(
    assignment_id: str,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Show what is owed against what was collected, and what a settle needs."""
    position = await engine.reconciliation(assignment_id)
    return ReconciliationOut(
        assignment_id=assignment_id,
        total_charges=position.total_charges,
        total_expenses=position.total_expenses,
        total_due=position.total_due,
        collected_amount=position.collected_amount,
        remaining=position.remaining,
        required_total_collection=position.required_total_collection,
        is_balanced=position.is_balanced,
        direction=position.direction,
    )


@router.get("/{assignment_id}/corrections", response_model=list[CorrectionOut])
async def list_corrections(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
):
    await _get_assignment_or_404(db, assignment_id)
    result = await db.execute(
        select(SettlementCorrection)
        .where(SettlementCorrection.assignment_id == assignment_id)
        .order_by(SettlementCorrection.created_at.asc())
    )
    return [CorrectionOut.model_validate(c) for c in result.scalars().all()]


# ── Transitions ──────────────────────────────────────────────

@router.post("/{assignment_id}/deliver", response_model=LabourAssignmentOut)
async def deliver_assignment(
    assignment_id: str,
    body: TransitionRequest | None = None,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    record = await engine.deliver(assignment_id, notes=body.notes if body else None)
    return LabourAssignmentOut.model_validate(record)


@router.post("/{assignment_id}/collect", response_model=LabourAssignmentOut)
async def collect_assignment(
    assignment_id: str,
    body: CollectRequest,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Record the collection, or correct it if the assignment is already collected."""
    record = await engine.collect(
        assignment_id,
        collected_amount=body.collected_amount,
        station_expense=body.station_expense,
        bility_expense=body.bility_expense,
        station_labour=body.station_labour,
        cart_labour=body.cart_labour,
        notes=body.notes,
    )
    return LabourAssignmentOut.model_validate(record)


@router.post("/{assignment_id}/settle", response_model=LabourAssignmentOut)
async def settle_assignment(
    assignment_id: str,
    body: TransitionRequest | None = None,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    """Close the account; refused with 409 RECONCILIATION_PENDING while unbalanced."""
    record = await engine.settle(assignment_id, notes=body.notes if body else None)
    return LabourAssignmentOut.model_validate(record)


@router.post("/{assignment_id}/cancel", response_model=LabourAssignmentOut)
async def cancel_assignment(
    assignment_id: str,
    body: TransitionRequest | None = None,
    engine: SettlementEngine = Depends(get_settlement_engine),
):
    record = await engine.cancel(assignment_id, notes=body.notes if body else None)
    return LabourAssignmentOut.model_validate(record)
