"""Settlement engine — drives a labour assignment from dispatch to closed account.

State machine:

    ASSIGNED ──deliver──▶ DELIVERED ──collect──▶ COLLECTED ──settle──▶ SETTLED
        │                     │                   │  ▲
        │                     │                   └──┘ collect (correction)
        └─────────────────────┴───────cancel──────┴──────▶ CANCELLED

Reconciliation (run before every settle):

    total_due = shipment.total_charges + assignment.total_expenses
    remaining = total_due - assignment.collected_amount

A positive remaining means the labour person under-collected, a negative one
means a refund is owed.  Settlement is refused while |remaining| exceeds the
tolerance; the operator must then re-run collect with exactly `total_due`
(the correction protocol).  Nothing is ever auto-adjusted.

The engine works on immutable `AssignmentRecord` snapshots.  Each operation
loads one snapshot, validates, builds the next snapshot and hands it to the
store with the version it was loaded at, so a rejected operation never
writes anything and a concurrent writer surfaces as ConflictError.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Callable, Protocol

from freightdesk.middleware.exceptions import (
    InvalidTransition,
    ReconciliationPending,
    ValidationError,
)
from freightdesk.models.labour_assignment import AssignmentStatus, RETIRED_STATUSES

logger = logging.getLogger(__name__)

SETTLEMENT_TOLERANCE = 0.01   # currency units; absorbs float rounding

EXPENSE_FIELDS = ("station_expense", "bility_expense", "station_labour", "cart_labour")


# ── Snapshots ────────────────────────────────────────────────


@dataclass(frozen=True)
class AssignmentRecord:
    """Point-in-time copy of one labour assignment row."""
    id: str
    labour_person_id: str
    shipment_reference: str
    status: AssignmentStatus
    station_expense: float = 0.0
    bility_expense: float = 0.0
    station_labour: float = 0.0
    cart_labour: float = 0.0
    total_expenses: float = 0.0
    collected_amount: float = 0.0
    assigned_date: datetime | None = None
    due_date: date | None = None
    delivered_date: datetime | None = None
    settled_date: datetime | None = None
    notes: str | None = None
    version: int = 1


@dataclass(frozen=True)
class Reconciliation:
    """Money position of one assignment against its shipment."""
    total_charges: float
    total_expenses: float
    total_due: float
    collected_amount: float
    remaining: float
    required_total_collection: float
    tolerance: float
    # Decided on the cent-rounded difference
    is_balanced: bool

    @property
    def direction(self) -> str:
        if self.is_balanced:
            return "balanced"
        return "underpaid" if self.remaining > 0 else "overpaid"


@dataclass(frozen=True)
class CorrectionEntry:
    """An operator-confirmed revision of `collected_amount`."""
    assignment_id: str
    old_collected_amount: float
    new_collected_amount: float
    remaining_before: float
    reason: str | None = None


# ── Collaborators ────────────────────────────────────────────


class AssignmentStore(Protocol):
    async def load(self, assignment_id: str) -> AssignmentRecord: ...

    async def save(self, record: AssignmentRecord, expected_version: int) -> AssignmentRecord:
        """Persist `record` if the stored version still equals `expected_version`.

        Returns the record as stored (with its new version) or raises
        ConflictError.
        """
        ...

    async def record_correction(self, entry: CorrectionEntry) -> None: ...


class ShipmentLookup(Protocol):
    async def total_charges(self, shipment_reference: str) -> float: ...


# ── Pure helpers ─────────────────────────────────────────────


def recompute(record: AssignmentRecord) -> AssignmentRecord:
    """Return `record` with `total_expenses` derived from its four components."""
    total = sum(getattr(record, name) for name in EXPENSE_FIELDS)
    return replace(record, total_expenses=round(total, 2))


def reconcile(
    record: AssignmentRecord,
    total_charges: float,
    tolerance: float = SETTLEMENT_TOLERANCE,
) -> Reconciliation:
    total_due = total_charges + record.total_expenses
    remaining = total_due - record.collected_amount
    return Reconciliation(
        total_charges=round(total_charges, 2),
        total_expenses=round(record.total_expenses, 2),
        total_due=round(total_due, 2),
        collected_amount=round(record.collected_amount, 2),
        remaining=round(remaining, 2),
        required_total_collection=round(record.collected_amount + remaining, 2),
        tolerance=tolerance,
        is_balanced=within_tolerance(remaining, tolerance),
    )


def within_tolerance(difference: float, tolerance: float = SETTLEMENT_TOLERANCE) -> bool:
    """True when a money difference, taken to whole cents, is inside `tolerance`.

    Rounding first keeps a one-cent gap such as 0.30 - 0.29 (0.010000000000000009
    as a float) on the same side of the line as 1000.00 - 999.99.
    """
    return round(abs(difference), 2) <= tolerance


def validate_amount(value, field: str) -> float:
    """Coerce a money input to float, rejecting non-numeric and negative values."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number", field=field)
    amount = float(value)
    if not math.isfinite(amount):
        raise ValidationError(f"{field} must be a finite number", field=field)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return amount


# ── Engine ───────────────────────────────────────────────────


class SettlementEngine:
    """Runs the four assignment operations against a store.

    Args:
        store:     persistence for assignment snapshots and corrections
        shipments: read-only source of each shipment's total charges
        tolerance: currency equality margin for every money comparison
        now:       clock used for lifecycle timestamps
    """

    def __init__(
        self,
        store: AssignmentStore,
        shipments: ShipmentLookup,
        tolerance: float = SETTLEMENT_TOLERANCE,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.store = store
        self.shipments = shipments
        self.tolerance = tolerance
        self.now = now

    async def get(self, assignment_id: str) -> AssignmentRecord:
        return await self.store.load(assignment_id)

    async def reconciliation(self, assignment_id: str) -> Reconciliation:
        record = await self.store.load(assignment_id)
        return await self._reconcile(record)

    async def deliver(self, assignment_id: str, notes: str | None = None) -> AssignmentRecord:
        record = await self.store.load(assignment_id)
        if record.status != AssignmentStatus.ASSIGNED:
            raise InvalidTransition(record.status.value, "deliver")

        updated = replace(
            record,
            status=AssignmentStatus.DELIVERED,
            delivered_date=self.now(),
            notes=_notes(record, notes),
        )
        saved = await self._save(updated, record)
        logger.info("Assignment %s delivered (shipment %s)", saved.id, saved.shipment_reference)
        return saved

    async def collect(
        self,
        assignment_id: str,
        collected_amount: float,
        station_expense: float | None = None,
        bility_expense: float | None = None,
        station_labour: float | None = None,
        cart_labour: float | None = None,
        notes: str | None = None,
    ) -> AssignmentRecord:
        """Record the cash a labour person handed over.

        From DELIVERED this is the first collection: all four expense fields
        are written (missing ones as zero).  From COLLECTED it is a
        correction: only re-supplied expense fields change, and the new
        amount must equal the reconciled total due.
        """
        amount = validate_amount(collected_amount, "collected_amount")
        supplied = {
            name: validate_amount(value, name)
            for name, value in zip(
                EXPENSE_FIELDS,
                (station_expense, bility_expense, station_labour, cart_labour),
            )
            if value is not None
        }

        record = await self.store.load(assignment_id)

        if record.status == AssignmentStatus.COLLECTED:
            return await self._correct(record, amount, supplied, notes)
        if record.status != AssignmentStatus.DELIVERED:
            raise InvalidTransition(record.status.value, "collect")

        expenses = {name: supplied.get(name, 0.0) for name in EXPENSE_FIELDS}
        updated = recompute(replace(
            record,
            status=AssignmentStatus.COLLECTED,
            collected_amount=amount,
            notes=_notes(record, notes),
            **expenses,
        ))
        saved = await self._save(updated, record)
        logger.info(
            "Assignment %s collected %.2f (expenses %.2f)",
            saved.id, saved.collected_amount, saved.total_expenses,
        )
        return saved

    async def settle(self, assignment_id: str, notes: str | None = None) -> AssignmentRecord:
        record = await self.store.load(assignment_id)
        if record.status != AssignmentStatus.COLLECTED:
            raise InvalidTransition(record.status.value, "settle")

        position = await self._reconcile(record)
        if not position.is_balanced:
            logger.warning(
                "Settlement refused for assignment %s: remaining %.2f (%s)",
                record.id, position.remaining, position.direction,
            )
            raise ReconciliationPending(
                remaining=position.remaining,
                required_total_collection=position.required_total_collection,
                total_due=position.total_due,
            )

        updated = replace(
            record,
            status=AssignmentStatus.SETTLED,
            settled_date=self.now(),
            notes=_notes(record, notes),
        )
        saved = await self._save(updated, record)
        logger.info("Assignment %s settled at %.2f", saved.id, saved.collected_amount)
        return saved

    async def cancel(self, assignment_id: str, notes: str | None = None) -> AssignmentRecord:
        record = await self.store.load(assignment_id)
        if record.status in RETIRED_STATUSES:
            raise InvalidTransition(record.status.value, "cancel")

        updated = replace(record, status=AssignmentStatus.CANCELLED, notes=_notes(record, notes))
        saved = await self._save(updated, record)
        logger.info("Assignment %s cancelled from %s", saved.id, record.status.value)
        return saved

    # ── Internals ────────────────────────────────────────────

    async def _reconcile(self, record: AssignmentRecord) -> Reconciliation:
        charges = await self.shipments.total_charges(record.shipment_reference)
        return reconcile(record, charges, self.tolerance)

    async def _save(self, updated: AssignmentRecord, loaded: AssignmentRecord) -> AssignmentRecord:
        return await self.store.save(updated, expected_version=loaded.version)

    async def _correct(
        self,
        record: AssignmentRecord,
        amount: float,
        supplied: dict[str, float],
        notes: str | None,
    ) -> AssignmentRecord:
        before = await self._reconcile(record)
        revised = recompute(replace(record, **supplied))
        target = await self._reconcile(revised)

        required = target.required_total_collection
        if not within_tolerance(amount - target.total_due, self.tolerance):
            raise ValidationError(
                f"To settle, the collected amount must be exactly {required:.2f}",
                field="collected_amount",
                expected=required,
            )

        updated = replace(revised, collected_amount=amount, notes=_notes(record, notes))
        saved = await self._save(updated, record)
        await self.store.record_correction(CorrectionEntry(
            assignment_id=record.id,
            old_collected_amount=record.collected_amount,
            new_collected_amount=amount,
            remaining_before=before.remaining,
            reason=notes,
        ))
        logger.warning(
            "Assignment %s collection corrected %.2f -> %.2f (remaining was %.2f)",
            record.id, record.collected_amount, amount, before.remaining,
        )
        return saved


def _notes(record: AssignmentRecord, notes: str | None) -> str | None:
    return notes if notes is not None else record.notes
