"""Labour person register.

Endpoints:
    POST /api/labour-persons          Register a labour person
    GET  /api/labour-persons          List labour persons (optional name search)
    GET  /api/labour-persons/report   Per-person collections over a date range
"""

from collections import defaultdict
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from freightdesk.database import get_db
from freightdesk.models.labour_assignment import LabourAssignment
from freightdesk.models.labour_person import LabourPerson
from freightdesk.routers.labour_assignments import assigned_within
from freightdesk.schemas.common import PaginatedResponse
from freightdesk.schemas.labour import (
    LabourPersonCreate,
    LabourPersonOut,
    LabourPersonReportRow,
    PersonReportAssignment,
)

router = APIRouter()


@router.post("", response_model=LabourPersonOut, status_code=status.HTTP_201_CREATED)
async def create_labour_person(
    body: LabourPersonCreate,
    db: AsyncSession = Depends(get_db),
):
    person = LabourPerson(name=body.name, contact_info=body.contact_info)
    db.add(person)
    await db.flush()
    return LabourPersonOut.model_validate(person)


@router.get("", response_model=PaginatedResponse[LabourPersonOut])
async def list_labour_persons(
    q: str | None = Query(None, description="Case-insensitive name search"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    base_stmt = select(LabourPerson)
    if q:
        base_stmt = base_stmt.where(LabourPerson.name.ilike(f"%{q}%"))

    total = (
        await db.execute(select(func.count()).select_from(base_stmt.subquery()))
    ).scalar() or 0

    result = await db.execute(
        base_stmt.order_by(LabourPerson.name.asc()).limit(limit).offset(offset)
    )
    items = [LabourPersonOut.model_validate(p) for p in result.scalars().all()]
    return PaginatedResponse(items=items, total=total, limit=limit, offset=offset)


# ── GET /api/labour-persons/report ───────────────────────────

@router.get("/report", response_model=list[LabourPersonReportRow])
async def labour_persons_report(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Every labour person, by name, with what they collected in the period.

    Date bounds apply to the assignments' `assigned_date` and include whole
    calendar days; people with nothing in range are listed with no assignments.
    """
    persons = (
        await db.execute(select(LabourPerson).order_by(LabourPerson.name.asc()))
    ).scalars().all()

    result = await db.execute(
        select(LabourAssignment)
        .where(*assigned_within(start_date, end_date))
        .order_by(LabourAssignment.assigned_date.asc())
    )
    by_person: dict[str, list[PersonReportAssignment]] = defaultdict(list)
    for a in result.scalars().all():
        by_person[a.labour_person_id].append(PersonReportAssignment.model_validate(a))

    rows = []
    for person in persons:
        assignments = by_person[person.id]
        rows.append(LabourPersonReportRow(
            id=person.id,
            name=person.name,
            contact_info=person.contact_info,
            assignment_count=len(assignments),
            total_collected=round(sum(a.collected_amount for a in assignments), 2),
            assignments=assignments,
        ))
    return rows
