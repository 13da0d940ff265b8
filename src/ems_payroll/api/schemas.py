"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Salary input schemas
# ============================================================================


class SalaryInputOverrides(BaseModel):
    """Optional calculation inputs. Omitted fields keep their default."""

    base_salary: Decimal | None = None
    sales_total: Decimal | None = None
    bonus_percent: Decimal | None = None
    total_worked_hours: Decimal | None = None
    overtime_rate: Decimal | None = None
    undertime_rate: Decimal | None = None
    absence_rate: Decimal | None = None
    absent_days: Decimal | None = None

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(include=set(SalaryInputOverrides.model_fields), exclude_none=True)


class SalaryProcessRequest(SalaryInputOverrides):
    """Schema for previewing or processing a salary."""

    employee_id: int
    period_start: date | None = None
    period_end: date | None = None


class SalaryCorrectionRequest(SalaryInputOverrides):
    """Schema for correcting a salary record."""

    salary_id: int


# ============================================================================
# Salary response schemas
# ============================================================================


class SalaryRecordResponse(BaseModel):
    """Schema for salary record response."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    employee_id: int
    period_start: date
    period_end: date
    pay_date: date
    base_salary: Decimal
    amount: Decimal
    status: str
    correction_of: int | None = None
    lineage_id: int | None = None
    deleted: bool
    breakdown: dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_json")
    created_at: datetime
    updated_at: datetime


class SalaryListResponse(BaseModel):
    """Schema for listing salary records."""

    items: list[SalaryRecordResponse]
    total: int
    page: int
    page_size: int


class SalaryBreakdownResponse(BaseModel):
    """Calculated pay components."""

    inputs: dict[str, Decimal]
    overtime_hours: Decimal
    undertime_hours: Decimal
    base_salary: Decimal
    bonus: Decimal
    overtime_bonus: Decimal
    undertime_deduction: Decimal
    absence_deduction: Decimal
    total: Decimal


class PeriodAggregatesResponse(BaseModel):
    """Aggregated attendance, sales and absences for a period."""

    model_config = ConfigDict(from_attributes=True)

    period_start: date
    period_end: date
    total_worked_hours: Decimal
    sales_total: Decimal
    absent_days: Decimal
    attendance_count: int
    sales_count: int
    absence_count: int


class SalaryPreviewResponse(BaseModel):
    """Schema for salary preview response."""

    employee_id: int
    breakdown: SalaryBreakdownResponse
    aggregates: PeriodAggregatesResponse
    existing_salary_id: int | None = None


class AuditEntryResponse(BaseModel):
    """Schema for a salary audit log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    salary_id: int
    action: str
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    changed_by: str
    changed_at: datetime


class SalaryCorrectionResponse(BaseModel):
    """Schema for correction response."""

    original: SalaryRecordResponse
    corrected: SalaryRecordResponse
    breakdown: SalaryBreakdownResponse
    audit_entry: AuditEntryResponse


class SalaryDetailResponse(BaseModel):
    """Schema for the breakdown endpoint."""

    salary: SalaryRecordResponse
    employee_name: str
    breakdown: dict[str, Any]
    aggregates: PeriodAggregatesResponse
    audit_logs: list[AuditEntryResponse]
    active_salary_id: int | None = None


# ============================================================================
# Notification schemas
# ============================================================================


class NotificationCreate(BaseModel):
    """Schema for creating a notification."""

    type: str = Field(min_length=1)
    message: str = Field(min_length=1)
    user_id: str | None = None
    employee_id: int | None = None
    action_url: str | None = None
    action_label: str | None = None
    broadcast_admin: bool = False
    broadcast_employee: bool = False


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    employee_id: int | None = None
    type: str
    message: str
    read: bool
    action_url: str | None = None
    action_label: str | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Schema for listing notifications."""

    items: list[NotificationResponse]
    skip: int
    take: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
