"""ORM models for the payroll ledger."""

from payroll_ledger.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from payroll_ledger.models.banking import AppendOnlyViolation, BankAccount, LedgerEntry
from payroll_ledger.models.notification import Notification
from payroll_ledger.models.payroll import PayrollRecord, PayrollWorkerLock
from payroll_ledger.models.working_hours import WorkingHourEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
    "AppendOnlyViolation",
    "BankAccount",
    "LedgerEntry",
    "Notification",
    "PayrollRecord",
    "PayrollWorkerLock",
    "WorkingHourEntry",
]
