"""Payroll record and working-hour entry state machines."""

from __future__ import annotations

from enum import Enum

from payroll_ledger.errors import InvalidStateTransition


class PayrollStatus(str, Enum):
    """Payroll record status values."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    VOID = "void"


class WorkingHourStatus(str, Enum):
    """Working-hour entry status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


class PayrollStateMachine:
    """State machine for payroll record status transitions.

    Allowed transitions:
    - pending → approved
    - pending → void
    - approved → paid
    - approved → void

    Paid and void are terminal.
    """

    VALID_TRANSITIONS: dict[PayrollStatus, list[PayrollStatus]] = {
        PayrollStatus.PENDING: [PayrollStatus.APPROVED, PayrollStatus.VOID],
        PayrollStatus.APPROVED: [PayrollStatus.PAID, PayrollStatus.VOID],
        PayrollStatus.PAID: [],
        PayrollStatus.VOID: [],
    }

    # Hours, rate and deductions can only change here
    AMOUNTS_MUTABLE = {PayrollStatus.PENDING}

    # Statuses that occupy a pay period for the worker
    BLOCKS_PERIOD = {
        PayrollStatus.PENDING,
        PayrollStatus.APPROVED,
        PayrollStatus.PAID,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        try:
            allowed = cls.VALID_TRANSITIONS[PayrollStatus(from_status)]
            return PayrollStatus(to_status) in allowed
        except ValueError:
            return False

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidStateTransition if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransition(_value(from_status), _value(to_status))

    @classmethod
    def can_modify_amounts(cls, status: str) -> bool:
        """Check if hours, rate and deductions may still change."""
        return _as_status(PayrollStatus, status) in cls.AMOUNTS_MUTABLE

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further transitions exist."""
        return not cls.get_next_statuses(status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[PayrollStatus]:
        """Get list of valid next statuses from current status."""
        status = _as_status(PayrollStatus, current_status)
        if status is None:
            return []
        return cls.VALID_TRANSITIONS[status]


class WorkingHourStateMachine:
    """State machine for working-hour entries.

    - pending → approved | rejected
    - approved → paid (only through a payroll payment)
    """

    VALID_TRANSITIONS: dict[WorkingHourStatus, list[WorkingHourStatus]] = {
        WorkingHourStatus.PENDING: [WorkingHourStatus.APPROVED, WorkingHourStatus.REJECTED],
        WorkingHourStatus.APPROVED: [WorkingHourStatus.PAID],
        WorkingHourStatus.REJECTED: [],
        WorkingHourStatus.PAID: [],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        try:
            allowed = cls.VALID_TRANSITIONS[WorkingHourStatus(from_status)]
            return WorkingHourStatus(to_status) in allowed
        except ValueError:
            return False

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidStateTransition if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransition(_value(from_status), _value(to_status))

    @classmethod
    def can_correct(cls, status: str) -> bool:
        """Only pending entries accept corrections."""
        return _as_status(WorkingHourStatus, status) == WorkingHourStatus.PENDING


def _as_status(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else str(status)
