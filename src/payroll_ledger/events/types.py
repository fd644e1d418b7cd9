"""Domain events for payroll and ledger operations.

Events are frozen dataclasses carrying an explicit payload and an
``EventMetadata`` header. Each event class declares its routing category
as a class attribute.

Events are emitted only after the transaction that caused them has
committed, so a handler never observes state that could still roll back.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Routing categories for handlers registered with ``on_category``."""

    PAYROLL = "payroll"
    PAYMENT = "payment"
    LEDGER = "ledger"
    RECONCILIATION = "reconciliation"


@dataclass(frozen=True)
class EventMetadata:
    """Header shared by every event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # same value across events of one operation
    actor_id: UUID | None
    source_service: str
    version: int = 1  # payload schema version

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        source_service: str = "payroll_ledger",
        timestamp: datetime | None = None,
    ) -> EventMetadata:
        """New header with a fresh event id (and correlation id unless given)."""
        return cls(
            event_id=uuid4(),
            timestamp=timestamp or datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    category: ClassVar[EventCategory]

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Class name, used for type-based routing."""
        return type(self).__name__

    def to_dict(self) -> dict[str, Any]:
        """Payload and metadata as JSON-compatible primitives."""
        data = _jsonable(asdict(self))
        data["event_type"] = self.event_type
        data["category"] = self.category.value
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


# =============================================================================
# Payroll Events
# =============================================================================


@dataclass(frozen=True)
class PayrollCreated(DomainEvent):
    """A payroll record was created in pending status."""

    category: ClassVar[EventCategory] = EventCategory.PAYROLL

    payroll_record_id: UUID
    worker_id: UUID
    period_start: date
    period_end: date
    net_pay: Decimal
    locked_entry_count: int


@dataclass(frozen=True)
class PayrollApproved(DomainEvent):
    """A payroll record moved from pending to approved."""

    category: ClassVar[EventCategory] = EventCategory.PAYROLL

    payroll_record_id: UUID
    worker_id: UUID
    net_pay: Decimal


@dataclass(frozen=True)
class PayrollVoided(DomainEvent):
    """A payroll record was voided before payment."""

    category: ClassVar[EventCategory] = EventCategory.PAYROLL

    payroll_record_id: UUID
    worker_id: UUID
    previous_status: str
    released_entry_count: int


# =============================================================================
# Payment Events
# =============================================================================


@dataclass(frozen=True)
class PayrollPaid(DomainEvent):
    """Salary was withdrawn from a bank account and the record marked paid."""

    category: ClassVar[EventCategory] = EventCategory.PAYMENT

    payroll_record_id: UUID
    worker_id: UUID
    bank_account_id: UUID
    ledger_entry_id: UUID | None  # None when net pay was zero
    amount: Decimal
    period_start: date
    period_end: date
    balance_after: Decimal


@dataclass(frozen=True)
class PaymentRejected(DomainEvent):
    """A payment attempt failed without mutating any state."""

    category: ClassVar[EventCategory] = EventCategory.PAYMENT

    payroll_record_id: UUID
    bank_account_id: UUID
    reason_code: str
    detail: str


# =============================================================================
# Ledger Events
# =============================================================================


@dataclass(frozen=True)
class LedgerEntryPosted(DomainEvent):
    """A ledger entry was appended."""

    category: ClassVar[EventCategory] = EventCategory.LEDGER

    ledger_entry_id: UUID
    bank_account_id: UUID
    entry_type: str
    amount: Decimal
    category_code: str
    ledger_version: int


# =============================================================================
# Reconciliation Events
# =============================================================================


@dataclass(frozen=True)
class LedgerInconsistencyDetected(DomainEvent):
    """Reconciliation found ledger state that does not match payroll state."""

    category: ClassVar[EventCategory] = EventCategory.RECONCILIATION

    finding_code: str
    bank_account_id: UUID | None
    payroll_record_id: UUID | None
    ledger_entry_id: UUID | None
    detail: str
