"""Aggregate model imports for Alembic auto-detection."""

from freightdesk.models.labour_person import LabourPerson  # noqa: F401
from freightdesk.models.shipment import Shipment  # noqa: F401
from freightdesk.models.labour_assignment import (  # noqa: F401
    AssignmentStatus,
    LabourAssignment,
)
from freightdesk.models.settlement_correction import SettlementCorrection  # noqa: F401
from freightdesk.models.labour_payment import LabourPayment  # noqa: F401
