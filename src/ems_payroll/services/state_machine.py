"""Salary record status machine with transition validation."""

from __future__ import annotations

from enum import Enum


class SalaryStatus(str, Enum):
    """Salary record status values."""

    PENDING = "pending"
    PAID = "paid"
    CORRECTED = "corrected"
    DELETED = "deleted"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class SalaryStateMachine:
    """State machine for salary record status transitions.

    Allowed transitions:
    - pending → paid
    - pending → corrected
    - pending → deleted
    - paid → corrected
    - paid → deleted
    - corrected → deleted

    A correction never edits the record in place: the old record moves to
    ``corrected`` and its successor starts life as ``paid``.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SalaryStatus.PENDING: [SalaryStatus.PAID, SalaryStatus.CORRECTED, SalaryStatus.DELETED],
        SalaryStatus.PAID: [SalaryStatus.CORRECTED, SalaryStatus.DELETED],
        SalaryStatus.CORRECTED: [SalaryStatus.DELETED],
        SalaryStatus.DELETED: [],  # Terminal state
    }

    # Statuses that count as the live record of a lineage
    ACTIVE = {
        SalaryStatus.PENDING,
        SalaryStatus.PAID,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

