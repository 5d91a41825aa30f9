"""Settlement engine tests against in-memory collaborators."""

from dataclasses import replace
from datetime import datetime

import pytest

from freightdesk.middleware.exceptions import (
    ConflictError,
    InvalidTransition,
    ReconciliationPending,
    ResourceNotFoundError,
    ValidationError,
)
from freightdesk.models.labour_assignment import AssignmentStatus
from freightdesk.services.settlement import (
    AssignmentRecord,
    SettlementEngine,
    recompute,
    reconcile,
    validate_amount,
    within_tolerance,
)

FIXED_NOW = datetime(2026, 3, 14, 9, 30)

# Scenario A expenses: station, bility, station labour, cart labour
EXPENSES = {
    "station_expense": 200.0,
    "bility_expense": 50.0,
    "station_labour": 100.0,
    "cart_labour": 150.0,
}


class InMemoryStore:
    """Dict-backed assignment store with the same version semantics as SQL."""

    def __init__(self, *records: AssignmentRecord):
        self.records = {r.id: r for r in records}
        self.corrections = []
        self.saves = 0

    async def load(self, assignment_id):
        try:
            return self.records[assignment_id]
        except KeyError:
            raise ResourceNotFoundError("Labour assignment", assignment_id)

    async def save(self, record, expected_version):
        if self.records[record.id].version != expected_version:
            raise ConflictError(record.id)
        stored = replace(record, version=expected_version + 1)
        self.records[record.id] = stored
        self.saves += 1
        return stored

    async def record_correction(self, entry):
        self.corrections.append(entry)


class RacingStore(InMemoryStore):
    """Simulates another writer committing between our load and save."""

    async def load(self, assignment_id):
        record = await super().load(assignment_id)
        current = self.records[assignment_id]
        self.records[assignment_id] = replace(current, version=current.version + 1)
        return record


class FixedShipments:
    def __init__(self, charges: dict[str, float]):
        self.charges = charges

    async def total_charges(self, shipment_reference):
        try:
            return self.charges[shipment_reference]
        except KeyError:
            raise ResourceNotFoundError("Shipment", shipment_reference)


def make_record(status=AssignmentStatus.ASSIGNED, **fields) -> AssignmentRecord:
    return AssignmentRecord(
        id="asg-1",
        labour_person_id="lp-1",
        shipment_reference="REG-1001",
        status=status,
        **fields,
    )


def make_engine(record: AssignmentRecord, charges: float = 1000.0, store_cls=InMemoryStore):
    store = store_cls(record)
    engine = SettlementEngine(
        store,
        FixedShipments({"REG-1001": charges}),
        now=lambda: FIXED_NOW,
    )
    return engine, store


def collected(amount: float, **expenses) -> AssignmentRecord:
    return recompute(make_record(
        AssignmentStatus.COLLECTED,
        collected_amount=amount,
        **{**EXPENSES, **expenses},
    ))


# ── Pure helpers ─────────────────────────────────────────────


@pytest.mark.unit
class TestRecompute:
    def test_sums_four_expense_fields(self):
        record = recompute(make_record(**EXPENSES))
        assert record.total_expenses == 500.0

    def test_rounds_to_cents(self):
        record = recompute(make_record(station_expense=0.1, bility_expense=0.2))
        assert record.total_expenses == 0.3

    def test_does_not_mutate_input(self):
        original = make_record(station_expense=10.0, total_expenses=999.0)
        recompute(original)
        assert original.total_expenses == 999.0


@pytest.mark.unit
class TestReconcile:
    def test_underpaid(self):
        position = reconcile(collected(1400.0), 1000.0)
        assert position.total_due == 1500.0
        assert position.remaining == 100.0
        assert position.required_total_collection == 1500.0
        assert position.is_balanced is False
        assert position.direction == "underpaid"

    def test_overpaid(self):
        position = reconcile(collected(1600.0), 1000.0)
        assert position.remaining == -100.0
        assert position.direction == "overpaid"

    def test_balanced_within_tolerance(self):
        position = reconcile(collected(1499.995), 1000.0)
        assert position.is_balanced is True
        assert position.direction == "balanced"

    def test_outside_tolerance(self):
        position = reconcile(collected(1499.98), 1000.0)
        assert position.is_balanced is False
        assert position.remaining == 0.02


@pytest.mark.unit
class TestValidateAmount:
    def test_accepts_int_and_float(self):
        assert validate_amount(5, "cart_labour") == 5.0
        assert validate_amount(0.0, "cart_labour") == 0.0

    @pytest.mark.parametrize("value", [-0.01, -100])
    def test_rejects_negative(self, value):
        with pytest.raises(ValidationError) as exc_info:
            validate_amount(value, "station_expense")
        assert exc_info.value.field == "station_expense"

    @pytest.mark.parametrize("value", ["100", None, True, [1]])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(ValidationError):
            validate_amount(value, "collected_amount")

    @pytest.mark.parametrize("value", [float("nan"), float("inf")])
    def test_rejects_non_finite(self, value):
        with pytest.raises(ValidationError):
            validate_amount(value, "collected_amount")


# ── Lifecycle ────────────────────────────────────────────────


@pytest.mark.unit
@pytest.mark.asyncio
class TestScenarios:
    async def test_full_collection_settles(self):
        """Scenario A: exact collection settles on the first try."""
        engine, store = make_engine(make_record())

        await engine.deliver("asg-1")
        record = await engine.collect("asg-1", 1500.0, **EXPENSES)
        assert record.status == AssignmentStatus.COLLECTED
        assert record.total_expenses == 500.0

        settled = await engine.settle("asg-1")
        assert settled.status == AssignmentStatus.SETTLED
        assert settled.settled_date == FIXED_NOW
        assert store.corrections == []

    async def test_underpaid_requires_correction(self):
        """Scenario B: short collection blocks settlement until corrected."""
        engine, store = make_engine(make_record(AssignmentStatus.DELIVERED))
        await engine.collect("asg-1", 1400.0, **EXPENSES)

        with pytest.raises(ReconciliationPending) as exc_info:
            await engine.settle("asg-1")
        assert exc_info.value.remaining == 100.0
        assert exc_info.value.required_total_collection == 1500.0
        assert store.records["asg-1"].status == AssignmentStatus.COLLECTED

        corrected = await engine.collect("asg-1", 1500.0, notes="balance paid")
        assert corrected.collected_amount == 1500.0
        assert corrected.total_expenses == 500.0

        settled = await engine.settle("asg-1")
        assert settled.status == AssignmentStatus.SETTLED

        [entry] = store.corrections
        assert entry.old_collected_amount == 1400.0
        assert entry.new_collected_amount == 1500.0
        assert entry.remaining_before == 100.0
        assert entry.reason == "balance paid"

    async def test_overpaid_requires_correction(self):
        """Scenario C: over-collection is a refund, not an auto-adjustment."""
        engine, store = make_engine(make_record(AssignmentStatus.DELIVERED))
        await engine.collect("asg-1", 1600.0, **EXPENSES)

        position = await engine.reconciliation("asg-1")
        assert position.remaining == -100.0
        assert position.required_total_collection == 1500.0

        with pytest.raises(ReconciliationPending) as exc_info:
            await engine.settle("asg-1")
        assert "Overpaid" in exc_info.value.message

        await engine.collect("asg-1", 1500.0)
        settled = await engine.settle("asg-1")
        assert settled.collected_amount == 1500.0
        assert store.corrections[0].remaining_before == -100.0

    async def test_cancel_settled_is_rejected(self):
        """Scenario D."""
        engine, store = make_engine(make_record(AssignmentStatus.SETTLED))

        with pytest.raises(InvalidTransition) as exc_info:
            await engine.cancel("asg-1")
        assert exc_info.value.current_status == "SETTLED"
        assert exc_info.value.operation == "cancel"
        assert store.saves == 0


@pytest.mark.unit
@pytest.mark.asyncio
class TestTransitions:
    async def test_deliver_stamps_date(self):
        engine, _ = make_engine(make_record())
        record = await engine.deliver("asg-1", notes="left the depot")
        assert record.status == AssignmentStatus.DELIVERED
        assert record.delivered_date == FIXED_NOW
        assert record.notes == "left the depot"
        assert record.version == 2

    async def test_deliver_twice_is_rejected_without_change(self):
        engine, store = make_engine(make_record())
        first = await engine.deliver("asg-1")

        with pytest.raises(InvalidTransition):
            await engine.deliver("asg-1")
        assert store.records["asg-1"] == first

    @pytest.mark.parametrize("status", [
        AssignmentStatus.ASSIGNED,
        AssignmentStatus.SETTLED,
        AssignmentStatus.CANCELLED,
    ])
    async def test_collect_illegal_from(self, status):
        engine, store = make_engine(make_record(status))
        with pytest.raises(InvalidTransition):
            await engine.collect("asg-1", 1500.0)
        assert store.saves == 0

    @pytest.mark.parametrize("status", [
        AssignmentStatus.ASSIGNED,
        AssignmentStatus.DELIVERED,
        AssignmentStatus.SETTLED,
        AssignmentStatus.CANCELLED,
    ])
    async def test_settle_illegal_from(self, status):
        engine, _ = make_engine(make_record(status))
        with pytest.raises(InvalidTransition):
            await engine.settle("asg-1")

    @pytest.mark.parametrize("status", [
        AssignmentStatus.ASSIGNED,
        AssignmentStatus.DELIVERED,
        AssignmentStatus.COLLECTED,
    ])
    async def test_cancel_from_active(self, status):
        engine, _ = make_engine(make_record(status, notes="original"))
        record = await engine.cancel("asg-1")
        assert record.status == AssignmentStatus.CANCELLED
        assert record.notes == "original"

    async def test_cancel_twice_is_rejected(self):
        engine, _ = make_engine(make_record())
        await engine.cancel("asg-1")
        with pytest.raises(InvalidTransition):
            await engine.cancel("asg-1")

    async def test_first_collect_zeroes_missing_expenses(self):
        engine, _ = make_engine(make_record(AssignmentStatus.DELIVERED, cart_labour=75.0))
        record = await engine.collect("asg-1", 1200.0, station_expense=200.0)
        assert record.cart_labour == 0.0
        assert record.total_expenses == 200.0

    async def test_unknown_assignment(self):
        engine, _ = make_engine(make_record())
        with pytest.raises(ResourceNotFoundError):
            await engine.deliver("missing")


@pytest.mark.unit
@pytest.mark.asyncio
class TestCollectValidation:
    async def test_negative_amount_writes_nothing(self):
        engine, store = make_engine(make_record(AssignmentStatus.DELIVERED))
        with pytest.raises(ValidationError) as exc_info:
            await engine.collect("asg-1", -1.0)
        assert exc_info.value.field == "collected_amount"
        assert store.saves == 0

    async def test_negative_expense_writes_nothing(self):
        engine, store = make_engine(make_record(AssignmentStatus.DELIVERED))
        with pytest.raises(ValidationError) as exc_info:
            await engine.collect("asg-1", 100.0, bility_expense=-5.0)
        assert exc_info.value.field == "bility_expense"
        assert store.records["asg-1"].status == AssignmentStatus.DELIVERED

    async def test_nan_rejected(self):
        engine, _ = make_engine(make_record(AssignmentStatus.DELIVERED))
        with pytest.raises(ValidationError):
            await engine.collect("asg-1", float("nan"))


@pytest.mark.unit
@pytest.mark.asyncio
class TestCorrection:
    async def test_mismatched_amount_reports_expected(self):
        engine, store = make_engine(collected(1400.0))

        with pytest.raises(ValidationError) as exc_info:
            await engine.collect("asg-1", 1450.0)
        assert exc_info.value.expected == 1500.0
        assert "1500.00" in exc_info.value.message
        assert store.saves == 0
        assert store.corrections == []

    async def test_resupplied_expenses_change_target(self):
        engine, store = make_engine(collected(1400.0))

        # Cart labour revised down from 150 to 50: total due becomes 1400
        record = await engine.collect("asg-1", 1400.0, cart_labour=50.0)
        assert record.total_expenses == 400.0
        assert record.station_expense == 200.0

        settled = await engine.settle("asg-1")
        assert settled.status == AssignmentStatus.SETTLED
        assert store.corrections[0].remaining_before == 100.0

    async def test_correction_within_tolerance(self):
        engine, _ = make_engine(collected(1400.0))
        record = await engine.collect("asg-1", 1499.995)
        assert record.collected_amount == 1499.995


@pytest.mark.unit
@pytest.mark.asyncio
class TestTolerance:
    async def test_half_cent_short_settles(self):
        engine, _ = make_engine(collected(1499.995))
        settled = await engine.settle("asg-1")
        assert settled.status == AssignmentStatus.SETTLED

    async def test_two_cents_short_is_pending(self):
        engine, _ = make_engine(collected(1499.98))
        with pytest.raises(ReconciliationPending) as exc_info:
            await engine.settle("asg-1")
        assert exc_info.value.remaining == 0.02

    @pytest.mark.parametrize("charges, amount", [
        (1000.0, 999.99),
        (1500.01, 1500.0),
        (2.03, 2.02),
        (0.30, 0.29),
    ])
    async def test_exactly_one_cent_short_settles(self, charges, amount):
        engine, _ = make_engine(
            make_record(AssignmentStatus.COLLECTED, collected_amount=amount), charges=charges
        )
        settled = await engine.settle("asg-1")
        assert settled.status == AssignmentStatus.SETTLED

    @pytest.mark.parametrize("charges, amount", [(1000.0, 999.99), (0.30, 0.29)])
    async def test_correction_one_cent_off_is_accepted(self, charges, amount):
        engine, store = make_engine(
            make_record(AssignmentStatus.COLLECTED, collected_amount=0.0), charges=charges
        )
        record = await engine.collect("asg-1", amount)
        assert record.collected_amount == amount
        assert len(store.corrections) == 1

    @pytest.mark.parametrize("difference, expected", [
        (0.010000000000000009, True),
        (-0.010000000000000009, True),
        (0.019999999999999997, False),
        (0.0, True),
    ])
    def test_within_tolerance(self, difference, expected):
        assert within_tolerance(difference, 0.01) is expected


@pytest.mark.unit
@pytest.mark.asyncio
class TestConcurrency:
    async def test_stale_version_raises_conflict(self):
        engine, store = make_engine(make_record(), store_cls=RacingStore)

        with pytest.raises(ConflictError) as exc_info:
            await engine.deliver("asg-1")
        assert exc_info.value.error_code == "CONCURRENT_MODIFICATION"
        assert store.records["asg-1"].status == AssignmentStatus.ASSIGNED
