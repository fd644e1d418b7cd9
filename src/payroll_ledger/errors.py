"""Exception taxonomy for payroll and ledger operations.

Every error raised by the services derives from ``PayrollLedgerError`` and
carries a stable ``code`` so the HTTP layer and CLI can report it without
inspecting message text.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID


class PayrollLedgerError(Exception):
    """Base class for all domain errors."""

    code = "PAYROLL_LEDGER_ERROR"


class ValidationError(PayrollLedgerError):
    """Malformed input. Nothing was written."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class NotFoundError(PayrollLedgerError):
    """A referenced record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: UUID | str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateTransition(PayrollLedgerError):
    """Raised when a lifecycle transition is not allowed from the current status."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(from_status)
        self.to_status = str(to_status)
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InsufficientFunds(PayrollLedgerError):
    """The bank account balance does not cover the requested withdrawal."""

    code = "INSUFFICIENT_FUNDS"

    def __init__(self, bank_account_id: UUID, required: Decimal, available: Decimal):
        self.bank_account_id = bank_account_id
        self.required = required
        self.available = available
        super().__init__(
            f"Bank account {bank_account_id} has {available}, {required} required"
        )

    @property
    def shortfall(self) -> Decimal:
        """Amount missing to honor the withdrawal."""
        return self.required - self.available


class ConcurrencyConflict(PayrollLedgerError):
    """A compare-and-set lost a race. Retry from a fresh read."""

    code = "CONCURRENCY_CONFLICT"

    def __init__(self, resource: str, resource_id: UUID | str, detail: str | None = None):
        self.resource = resource
        self.resource_id = resource_id
        msg = f"Concurrent modification of {resource} {resource_id}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PersistenceFailure(PayrollLedgerError):
    """The store failed mid-transaction. The transaction was rolled back."""

    code = "PERSISTENCE_FAILURE"
