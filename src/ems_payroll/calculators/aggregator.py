"""Period aggregation of attendance, sales and absence rows."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems_payroll.calculators.types import PeriodAggregates
from ems_payroll.models import AbsenceRecord, AttendanceRecord, SalesRecord


class PeriodAggregator:
    """Sums an employee's inputs over an inclusive date range."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def aggregate(
        self, employee_id: int, period_start: date, period_end: date
    ) -> PeriodAggregates:
        """Aggregate worked hours, sales and absent days for the period."""
        if period_end < period_start:
            raise ValueError(
                f"Period end {period_end} is before period start {period_start}"
            )

        hours, attendance_count = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(AttendanceRecord.work_hours), 0),
                    func.count(AttendanceRecord.id),
                ).where(
                    AttendanceRecord.employee_id == employee_id,
                    AttendanceRecord.work_date >= period_start,
                    AttendanceRecord.work_date <= period_end,
                )
            )
        ).one()

        sales, sales_count = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(SalesRecord.amount), 0),
                    func.count(SalesRecord.id),
                ).where(
                    SalesRecord.employee_id == employee_id,
                    SalesRecord.sale_date >= period_start,
                    SalesRecord.sale_date <= period_end,
                )
            )
        ).one()

        absent, absence_count = (
            await self.session.execute(
                select(
                    func.coalesce(func.sum(AbsenceRecord.duration_days), 0),
                    func.count(AbsenceRecord.id),
                ).where(
                    AbsenceRecord.employee_id == employee_id,
                    AbsenceRecord.absence_date >= period_start,
                    AbsenceRecord.absence_date <= period_end,
                )
            )
        ).one()

        return PeriodAggregates(
            employee_id=employee_id,
            period_start=period_start,
            period_end=period_end,
            total_worked_hours=_to_decimal(hours),
            sales_total=_to_decimal(sales),
            absent_days=_to_decimal(absent),
            attendance_count=attendance_count,
            sales_count=sales_count,
            absence_count=absence_count,
        )


def _to_decimal(value: object) -> Decimal:
    # SUM over Numeric may come back as Decimal, int or float depending on dialect
    return Decimal(str(value)) if value is not None else Decimal("0")
