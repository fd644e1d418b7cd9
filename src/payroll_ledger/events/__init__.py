"""Domain events package."""

from payroll_ledger.events.emitter import EventBatch, EventEmitter, EventHandler
from payroll_ledger.events.types import (
    DomainEvent,
    EventCategory,
    EventMetadata,
    LedgerEntryPosted,
    LedgerInconsistencyDetected,
    PaymentRejected,
    PayrollApproved,
    PayrollCreated,
    PayrollPaid,
    PayrollVoided,
)

__all__ = [
    # Emitter
    "EventBatch",
    "EventEmitter",
    "EventHandler",
    # Base
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    # Payroll
    "PayrollCreated",
    "PayrollApproved",
    "PayrollVoided",
    # Payment
    "PayrollPaid",
    "PaymentRejected",
    # Ledger
    "LedgerEntryPosted",
    # Reconciliation
    "LedgerInconsistencyDetected",
]
