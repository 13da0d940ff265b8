"""Type definitions for the salary calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class SalaryInputs:
    """Aggregated inputs and rates for one salary computation."""

    base_salary: Decimal
    sales_total: Decimal
    bonus_percent: Decimal
    total_worked_hours: Decimal
    overtime_rate: Decimal
    undertime_rate: Decimal
    absence_rate: Decimal
    absent_days: Decimal

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-safe dict (decimals as strings)."""
        return {f.name: str(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SalaryInputs:
        """Rebuild inputs from a stored snapshot."""
        return cls(**{f.name: Decimal(str(data[f.name])) for f in fields(cls)})

    def with_overrides(self, overrides: dict[str, Any]) -> SalaryInputs:
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {
            key: Decimal(str(value))
            for key, value in overrides.items()
            if key in known and value is not None
        }
        return replace(self, **changes)


@dataclass(frozen=True)
class SalaryBreakdown:
    """Derived pay components. ``total`` is the amount paid."""

    inputs: SalaryInputs
    overtime_hours: Decimal
    undertime_hours: Decimal
    base_salary: Decimal
    bonus: Decimal
    overtime_bonus: Decimal
    undertime_deduction: Decimal
    absence_deduction: Decimal
    total: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputs": self.inputs.to_dict(),
            "overtime_hours": str(self.overtime_hours),
            "undertime_hours": str(self.undertime_hours),
            "base_salary": str(self.base_salary),
            "bonus": str(self.bonus),
            "overtime_bonus": str(self.overtime_bonus),
            "undertime_deduction": str(self.undertime_deduction),
            "absence_deduction": str(self.absence_deduction),
            "total": str(self.total),
        }


@dataclass
class PeriodAggregates:
    """Sums of attendance, sales and absences for one employee and period."""

    employee_id: int
    period_start: date
    period_end: date
    total_worked_hours: Decimal = Decimal("0")
    sales_total: Decimal = Decimal("0")
    absent_days: Decimal = Decimal("0")
    attendance_count: int = 0
    sales_count: int = 0
    absence_count: int = 0
