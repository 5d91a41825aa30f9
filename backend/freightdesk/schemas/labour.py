"""Pydantic schemas for labour persons, assignments, settlement and payments."""

from datetime import date, datetime

from pydantic import BaseModel, field_validator

from freightdesk.models.labour_assignment import AssignmentStatus


# ── Labour persons ───────────────────────────────────────────


class LabourPersonCreate(BaseModel):
    name: str
    contact_info: str

    @field_validator("name", "contact_info")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be blank")
        if len(v) > 100:
            raise ValueError("String too long (max 100 characters)")
        return v


class LabourPersonOut(BaseModel):
    id: str
    name: str
    contact_info: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PersonReportAssignment(BaseModel):
    id: str
    shipment_reference: str
    assigned_date: datetime
    status: AssignmentStatus
    collected_amount: float

    model_config = {"from_attributes": True}


class LabourPersonReportRow(BaseModel):
    """One labour person with the assignments handed to them in the period."""
    id: str
    name: str
    contact_info: str
    assignment_count: int
    total_collected: float
    assignments: list[PersonReportAssignment]


# ── Assignments ──────────────────────────────────────────────


class LabourAssignmentCreate(BaseModel):
    labour_person_id: str
    shipment_ids: list[str]
    due_date: date | None = None
    notes: str | None = None

    @field_validator("shipment_ids")
    @classmethod
    def at_least_one(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one shipment is required")
        if len(set(v)) != len(v):
            raise ValueError("Duplicate shipment ids")
        return v


class LabourAssignmentOut(BaseModel):
    id: str
    labour_person_id: str
    shipment_reference: str
    status: AssignmentStatus
    station_expense: float
    bility_expense: float
    station_labour: float
    cart_labour: float
    total_expenses: float
    collected_amount: float
    assigned_date: datetime | None = None
    due_date: date | None = None
    delivered_date: datetime | None = None
    settled_date: datetime | None = None
    notes: str | None = None
    version: int

    model_config = {"from_attributes": True}


class TransitionRequest(BaseModel):
    """Body for deliver / settle / cancel."""
    notes: str | None = None


class CollectRequest(BaseModel):
    """Body for collect.

    Expense fields left out are recorded as zero on the first collection and
    kept as they are on a correction.  Amounts are range-checked by the
    settlement engine.
    """
    collected_amount: float
    station_expense: float | None = None
    bility_expense: float | None = None
    station_labour: float | None = None
    cart_labour: float | None = None
    notes: str | None = None


class ReconciliationOut(BaseModel):
    assignment_id: str
    total_charges: float
    total_expenses: float
    total_due: float
    collected_amount: float
    remaining: float
    required_total_collection: float
    is_balanced: bool
    direction: str  # balanced | underpaid | overpaid


class CorrectionOut(BaseModel):
    id: str
    assignment_id: str
    old_collected_amount: float
    new_collected_amount: float
    remaining_before: float
    reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AssignmentReportRow(BaseModel):
    id: str
    assigned_date: datetime
    status: AssignmentStatus
    labour_person_name: str | None = None
    shipment_reference: str
    bility_number: str | None = None
    shipment_charges: float
    total_expenses: float
    total_receivable: float
    net_collected: float
    discount_given: float


class ReminderOut(BaseModel):
    id: str
    labour_person_id: str
    labour_person_name: str | None = None
    shipment_reference: str
    status: AssignmentStatus
    assigned_date: datetime
    due_date: date | None = None
    is_overdue: bool


# ── Settlements / payments ───────────────────────────────────


class LabourPaymentCreate(BaseModel):
    labour_person_id: str
    shipment_id: str
    amount_paid: float
    payment_method: str = "CASH"
    notes: str | None = None

    @field_validator("amount_paid")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Amount paid must be greater than zero")
        return v

    @field_validator("payment_method")
    @classmethod
    def valid_method(cls, v: str) -> str:
        v = v.upper()
        if v not in ("CASH", "BANK", "OTHER"):
            raise ValueError("payment_method must be 'CASH', 'BANK' or 'OTHER'")
        return v


class LabourPaymentOut(BaseModel):
    id: str
    labour_person_id: str
    shipment_reference: str
    payment_date: datetime
    amount_paid: float
    payment_method: str
    notes: str | None = None

    model_config = {"from_attributes": True}


class SettlementAssignmentLine(BaseModel):
    id: str
    shipment_reference: str
    bility_number: str | None = None
    shipment_charges: float
    total_expenses: float
    total_due: float
    collected_amount: float
    status: AssignmentStatus


class LabourSettlementSummary(BaseModel):
    id: str
    name: str
    contact_info: str
    total_due: float
    total_paid: float
    balance: float
    assignments: list[SettlementAssignmentLine]
    payment_history: list[LabourPaymentOut]
