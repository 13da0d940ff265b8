"""Salary calculation."""

from ems_payroll.calculators.aggregator import PeriodAggregator
from ems_payroll.calculators.salary_calculator import (
    STANDARD_HOURS,
    SalaryValidationError,
    calculate_salary,
    validate_inputs,
)
from ems_payroll.calculators.types import PeriodAggregates, SalaryBreakdown, SalaryInputs

__all__ = [
    "STANDARD_HOURS",
    "PeriodAggregator",
    "PeriodAggregates",
    "SalaryBreakdown",
    "SalaryInputs",
    "SalaryValidationError",
    "calculate_salary",
    "validate_inputs",
]
