"""Payroll ledger services."""

from payroll_ledger.services.aggregation import HoursSummary, WorkingHoursAggregator
from payroll_ledger.services.ledger_service import BalanceSnapshot, LedgerService, PostResult
from payroll_ledger.services.notification_service import (
    NotificationDispatcher,
    NotificationMessage,
    NotificationSink,
)
from payroll_ledger.services.payment_orchestrator import PaymentOrchestrator, PaymentResult
from payroll_ledger.services.payroll_service import PayBreakdown, PayrollService, compute_pay
from payroll_ledger.services.reconciliation import (
    Finding,
    ReconciliationReport,
    ReconciliationService,
)
from payroll_ledger.services.state_machine import (
    PayrollStateMachine,
    PayrollStatus,
    WorkingHourStateMachine,
    WorkingHourStatus,
)
from payroll_ledger.services.working_hours import WorkingHoursService

__all__ = [
    # Working hours
    "WorkingHoursService",
    "WorkingHoursAggregator",
    "HoursSummary",
    # Payroll
    "PayrollService",
    "PayBreakdown",
    "compute_pay",
    "PayrollStateMachine",
    "PayrollStatus",
    "WorkingHourStateMachine",
    "WorkingHourStatus",
    # Ledger
    "LedgerService",
    "BalanceSnapshot",
    "PostResult",
    # Payment
    "PaymentOrchestrator",
    "PaymentResult",
    # Notifications
    "NotificationDispatcher",
    "NotificationMessage",
    "NotificationSink",
    # Reconciliation
    "ReconciliationService",
    "ReconciliationReport",
    "Finding",
]
