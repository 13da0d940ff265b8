"""Tests for salary record state machine."""

import pytest

from ems_payroll.services.state_machine import (
    InvalidTransitionError,
    SalaryStateMachine,
    SalaryStatus,
)


class TestSalaryStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """Test that valid transitions are allowed."""
        assert SalaryStateMachine.can_transition("pending", "paid") is True
        assert SalaryStateMachine.can_transition("pending", "corrected") is True
        assert SalaryStateMachine.can_transition("paid", "corrected") is True
        assert SalaryStateMachine.can_transition("paid", "deleted") is True

        # A superseded record can still be deleted
        assert SalaryStateMachine.can_transition("corrected", "deleted") is True

    def test_invalid_transitions(self):
        """Test that invalid transitions are blocked."""
        assert SalaryStateMachine.can_transition("paid", "pending") is False
        assert SalaryStateMachine.can_transition("corrected", "paid") is False
        assert SalaryStateMachine.can_transition("corrected", "corrected") is False

        # Deleted is terminal
        assert SalaryStateMachine.can_transition("deleted", "paid") is False
        assert SalaryStateMachine.can_transition("deleted", "corrected") is False

    def test_unknown_status_has_no_transitions(self):
        assert SalaryStateMachine.can_transition("archived", "paid") is False
        with pytest.raises(InvalidTransitionError):
            SalaryStateMachine.validate_transition("archived", "deleted")

    def test_validate_transition_raises(self):
        """Test that validate_transition raises for invalid transitions."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            SalaryStateMachine.validate_transition("deleted", "paid")

        assert exc_info.value.from_status == "deleted"
        assert exc_info.value.to_status == "paid"

    def test_validate_transition_allows_valid(self):
        SalaryStateMachine.validate_transition(SalaryStatus.PAID, SalaryStatus.CORRECTED)
        SalaryStateMachine.validate_transition("corrected", SalaryStatus.DELETED)

    def test_active_statuses(self):
        assert SalaryStatus.PAID in SalaryStateMachine.ACTIVE
        assert SalaryStatus.PENDING in SalaryStateMachine.ACTIVE
        assert SalaryStatus.CORRECTED not in SalaryStateMachine.ACTIVE
        assert SalaryStatus.DELETED not in SalaryStateMachine.ACTIVE
