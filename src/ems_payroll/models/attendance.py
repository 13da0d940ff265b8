"""Period-scoped facts read by salary calculation.

These rows are written by the attendance and sales subsystems; this service
only reads them.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from ems_payroll.models.base import Base, TimestampMixin


class AttendanceRecord(Base, TimestampMixin):
    """Daily attendance with hours worked."""

    __tablename__ = "attendance_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    work_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="present")

    __table_args__ = (Index("ix_attendance_employee_date", "employee_id", "work_date"),)


class SalesRecord(Base, TimestampMixin):
    """A recorded sale attributed to an employee."""

    __tablename__ = "sales_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    sale_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (Index("ix_sales_employee_date", "employee_id", "sale_date"),)


class AbsenceRecord(Base, TimestampMixin):
    """An absence, possibly spanning several days."""

    __tablename__ = "absence_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    absence_date: Mapped[date] = mapped_column(Date, nullable=False)
    duration_days: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("1"))
    reason: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (Index("ix_absence_employee_date", "employee_id", "absence_date"),)
