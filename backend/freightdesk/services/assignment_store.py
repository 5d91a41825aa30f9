"""SQLAlchemy implementations of the settlement engine's collaborators.

`SqlAssignmentStore.load` takes a row lock (FOR UPDATE; a no-op on SQLite)
and `save` only writes when the stored version still matches the one that
was loaded.  Both run inside the request's session, so the caller's commit
or rollback covers status, money fields and correction rows together.
"""

from dataclasses import replace

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from freightdesk.middleware.exceptions import ConflictError, ResourceNotFoundError
from freightdesk.models.labour_assignment import LabourAssignment
from freightdesk.models.settlement_correction import SettlementCorrection
from freightdesk.models.shipment import Shipment
from freightdesk.services.settlement import AssignmentRecord, CorrectionEntry

# Columns the engine is allowed to write
WRITABLE_FIELDS = (
    "status",
    "station_expense", "bility_expense", "station_labour", "cart_labour",
    "total_expenses", "collected_amount",
    "delivered_date", "settled_date", "notes",
)


def to_record(row: LabourAssignment) -> AssignmentRecord:
    return AssignmentRecord(
        id=row.id,
        labour_person_id=row.labour_person_id,
        shipment_reference=row.shipment_reference,
        status=row.status,
        station_expense=row.station_expense or 0.0,
        bility_expense=row.bility_expense or 0.0,
        station_labour=row.station_labour or 0.0,
        cart_labour=row.cart_labour or 0.0,
        total_expenses=row.total_expenses or 0.0,
        collected_amount=row.collected_amount or 0.0,
        assigned_date=row.assigned_date,
        due_date=row.due_date,
        delivered_date=row.delivered_date,
        settled_date=row.settled_date,
        notes=row.notes,
        version=row.version,
    )


class SqlAssignmentStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, assignment_id: str) -> AssignmentRecord:
        result = await self.db.execute(
            select(LabourAssignment)
            .where(LabourAssignment.id == assignment_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ResourceNotFoundError("Labour assignment", assignment_id)
        return to_record(row)

    async def save(self, record: AssignmentRecord, expected_version: int) -> AssignmentRecord:
        new_version = expected_version + 1
        values = {name: getattr(record, name) for name in WRITABLE_FIELDS}
        result = await self.db.execute(
            update(LabourAssignment)
            .where(
                LabourAssignment.id == record.id,
                LabourAssignment.version == expected_version,
            )
            .values(**values, version=new_version)
        )
        if result.rowcount != 1:
            raise ConflictError(record.id)
        return replace(record, version=new_version)

    async def record_correction(self, entry: CorrectionEntry) -> None:
        self.db.add(SettlementCorrection(
            assignment_id=entry.assignment_id,
            old_collected_amount=entry.old_collected_amount,
            new_collected_amount=entry.new_collected_amount,
            remaining_before=entry.remaining_before,
            reason=entry.reason,
        ))
        await self.db.flush()


class SqlShipmentLookup:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def total_charges(self, shipment_reference: str) -> float:
        result = await self.db.execute(
            select(Shipment.total_charges).where(
                Shipment.register_number == shipment_reference
            )
        )
        charges = result.scalar_one_or_none()
        if charges is None:
            raise ResourceNotFoundError("Shipment", shipment_reference)
        return float(charges)
