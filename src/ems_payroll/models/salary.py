"""Salary record and salary audit log models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    event,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from ems_payroll.models.base import Base, TimestampMixin, utcnow


class AuditLogImmutableError(Exception):
    """Raised when code tries to update or delete a salary audit entry."""

    def __init__(self, entry_id: int | None, operation: str):
        self.entry_id = entry_id
        self.operation = operation
        super().__init__(f"Salary audit entry {entry_id} cannot be {operation}")


class SalaryRecord(Base, TimestampMixin):
    """One version of an employee's pay for a period.

    Versions of the same period form a lineage: each correction points at the
    record it replaces through ``correction_of`` and shares its ``lineage_id``.
    """

    __tablename__ = "salary_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="paid")
    correction_of: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("salary_records.id"),
        nullable=True,
    )
    lineage_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('paid', 'pending', 'corrected', 'deleted')",
            name="salary_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="salary_period_check"),
        CheckConstraint("amount >= 0", name="salary_amount_non_negative"),
        Index("ix_salary_employee_period", "employee_id", "period_start", "period_end"),
        Index("ix_salary_lineage", "lineage_id"),
    )


class SalaryAuditLog(Base):
    """Append-only record of a correction or deletion."""

    __tablename__ = "salary_audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    salary_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("salary_records.id"),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(String, nullable=False)
    old_value: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[str] = mapped_column(String, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("action IN ('correct', 'delete')", name="salary_audit_action_check"),
        Index("ix_salary_audit_salary", "salary_id"),
    )


@event.listens_for(Session, "before_flush")
def _guard_audit_log(session: Session, flush_context: Any, instances: Any) -> None:
    """Reject updates and deletes of audit entries before SQL is emitted."""
    for obj in session.dirty:
        if isinstance(obj, SalaryAuditLog) and session.is_modified(obj):
            raise AuditLogImmutableError(obj.id, "modified")
    for obj in session.deleted:
        if isinstance(obj, SalaryAuditLog):
            raise AuditLogImmutableError(obj.id, "deleted")
