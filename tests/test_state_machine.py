"""Tests for payroll record and working-hour state machines."""

import pytest

from payroll_ledger.errors import InvalidStateTransition
from payroll_ledger.services.state_machine import (
    PayrollStateMachine,
    PayrollStatus,
    WorkingHourStateMachine,
)


class TestPayrollStateMachine:
    """Test payroll record transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        # pending → approved
        assert PayrollStateMachine.can_transition("pending", "approved") is True

        # approved → paid
        assert PayrollStateMachine.can_transition("approved", "paid") is True

        # unpaid records can be voided
        assert PayrollStateMachine.can_transition("pending", "void") is True
        assert PayrollStateMachine.can_transition("approved", "void") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        # Can't skip approval
        assert PayrollStateMachine.can_transition("pending", "paid") is False

        # Can't go backwards
        assert PayrollStateMachine.can_transition("approved", "pending") is False
        assert PayrollStateMachine.can_transition("paid", "approved") is False

        # Paid is terminal, including voiding and paying again
        assert PayrollStateMachine.can_transition("paid", "void") is False
        assert PayrollStateMachine.can_transition("paid", "paid") is False

        # Unknown statuses are never valid
        assert PayrollStateMachine.can_transition("draft", "approved") is False

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidStateTransition) as exc_info:
            PayrollStateMachine.validate_transition("pending", PayrollStatus.PAID)

        assert exc_info.value.from_status == "pending"
        assert exc_info.value.to_status == "paid"
        assert exc_info.value.code == "INVALID_STATE_TRANSITION"

    def test_can_modify_amounts(self):
        """Amounts are frozen once approved."""
        assert PayrollStateMachine.can_modify_amounts("pending") is True
        assert PayrollStateMachine.can_modify_amounts("approved") is False
        assert PayrollStateMachine.can_modify_amounts("paid") is False
        assert PayrollStateMachine.can_modify_amounts("void") is False

    def test_terminal_statuses(self):
        assert PayrollStateMachine.is_terminal("paid") is True
        assert PayrollStateMachine.is_terminal("void") is True
        assert PayrollStateMachine.is_terminal("approved") is False

    def test_get_next_statuses(self):
        assert PayrollStateMachine.get_next_statuses("approved") == [
            PayrollStatus.PAID,
            PayrollStatus.VOID,
        ]
        assert PayrollStateMachine.get_next_statuses("bogus") == []


class TestWorkingHourStateMachine:
    """Test working-hour entry transitions."""

    def test_review_transitions(self):
        assert WorkingHourStateMachine.can_transition("pending", "approved") is True
        assert WorkingHourStateMachine.can_transition("pending", "rejected") is True
        assert WorkingHourStateMachine.can_transition("approved", "paid") is True

    def test_rejected_and_paid_are_final(self):
        assert WorkingHourStateMachine.can_transition("rejected", "approved") is False
        assert WorkingHourStateMachine.can_transition("paid", "approved") is False
        with pytest.raises(InvalidStateTransition):
            WorkingHourStateMachine.validate_transition("approved", "pending")

    def test_only_pending_entries_can_be_corrected(self):
        assert WorkingHourStateMachine.can_correct("pending") is True
        assert WorkingHourStateMachine.can_correct("approved") is False
        assert WorkingHourStateMachine.can_correct("rejected") is False
