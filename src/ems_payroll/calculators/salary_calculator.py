"""Salary calculator: aggregated inputs and rates to a pay breakdown.

Pure and deterministic. No I/O, no clock.

    overtime_hours      = max(0, worked - STANDARD_HOURS)
    undertime_hours     = max(0, STANDARD_HOURS - worked)
    bonus               = sales_total * bonus_percent / 100
    overtime_bonus      = overtime_hours * overtime_rate
    undertime_deduction = undertime_hours * undertime_rate
    absence_deduction   = absent_days * absence_rate
    total = base + bonus + overtime_bonus - undertime_deduction - absence_deduction

Each money component is rounded half-up to cents before summing, so the
identity above holds exactly for the returned values.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import ROUND_HALF_UP, Decimal

from ems_payroll.calculators.types import SalaryBreakdown, SalaryInputs

STANDARD_HOURS = Decimal("160")

CENTS = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

_FIELD_LABELS = {
    "base_salary": "Base salary",
    "sales_total": "Sales total",
    "bonus_percent": "Bonus percent",
    "total_worked_hours": "Total worked hours",
    "overtime_rate": "Overtime rate",
    "undertime_rate": "Undertime rate",
    "absence_rate": "Absence rate",
    "absent_days": "Absent days",
}


class SalaryValidationError(Exception):
    """Raised when salary inputs or the resulting total are out of range."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(" ".join(errors))


def round_to_cents(amount: Decimal) -> Decimal:
    """Round amount to 2 decimal places (cents)."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_inputs(inputs: SalaryInputs) -> list[str]:
    """Return every range violation in ``inputs`` (empty if valid)."""
    errors: list[str] = []
    for f in fields(inputs):
        value = getattr(inputs, f.name)
        if not isinstance(value, Decimal) or not value.is_finite():
            errors.append(f"{_FIELD_LABELS[f.name]} must be a number.")
        elif value < ZERO:
            errors.append(f"{_FIELD_LABELS[f.name]} must be a non-negative number.")

    bonus_percent = inputs.bonus_percent
    if isinstance(bonus_percent, Decimal) and bonus_percent.is_finite() and bonus_percent > HUNDRED:
        errors.append("Bonus percent must be between 0 and 100.")

    return errors


def calculate_salary(
    inputs: SalaryInputs,
    standard_hours: Decimal = STANDARD_HOURS,
) -> SalaryBreakdown:
    """Compute the pay breakdown for ``inputs``.

    Raises:
        SalaryValidationError: If any input is negative, bonus_percent is
            above 100, or the total would be negative. Values are never
            clamped.
    """
    errors = validate_inputs(inputs)
    if errors:
        raise SalaryValidationError(errors)

    worked = inputs.total_worked_hours
    overtime_hours = max(ZERO, worked - standard_hours)
    undertime_hours = max(ZERO, standard_hours - worked)

    base = round_to_cents(inputs.base_salary)
    bonus = round_to_cents(inputs.sales_total * inputs.bonus_percent / HUNDRED)
    overtime_bonus = round_to_cents(overtime_hours * inputs.overtime_rate)
    undertime_deduction = round_to_cents(undertime_hours * inputs.undertime_rate)
    absence_deduction = round_to_cents(inputs.absent_days * inputs.absence_rate)

    total = base + bonus + overtime_bonus - undertime_deduction - absence_deduction
    if total < ZERO:
        raise SalaryValidationError(
            ["Total salary cannot be negative. Please review the input values."]
        )

    return SalaryBreakdown(
        inputs=inputs,
        overtime_hours=overtime_hours,
        undertime_hours=undertime_hours,
        base_salary=base,
        bonus=bonus,
        overtime_bonus=overtime_bonus,
        undertime_deduction=undertime_deduction,
        absence_deduction=absence_deduction,
        total=total,
    )
