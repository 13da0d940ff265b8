"""Salary API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from ems_payroll.api.dependencies import AdminUser, CurrentUser, Salaries
from ems_payroll.api.schemas import (
    AuditEntryResponse,
    ErrorResponse,
    PeriodAggregatesResponse,
    SalaryBreakdownResponse,
    SalaryCorrectionRequest,
    SalaryCorrectionResponse,
    SalaryDetailResponse,
    SalaryListResponse,
    SalaryPreviewResponse,
    SalaryProcessRequest,
    SalaryRecordResponse,
)
from ems_payroll.calculators import SalaryValidationError
from ems_payroll.services.salary_service import SalaryConflictError, SalaryNotFoundError

router = APIRouter(prefix="/salaries", tags=["salaries"])
employee_router = APIRouter(prefix="/employee", tags=["employee"])


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _conflict(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


def _invalid(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# ============================================================================
# Calculation
# ============================================================================


@router.post(
    "/preview",
    response_model=SalaryPreviewResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def preview_salary(
    salaries: Salaries,
    user: AdminUser,
    payload: SalaryProcessRequest,
) -> SalaryPreviewResponse:
    """Compute a salary from period aggregates without saving it."""
    try:
        preview = await salaries.preview(
            payload.employee_id,
            payload.period_start,
            payload.period_end,
            payload.overrides(),
        )
    except SalaryNotFoundError as e:
        raise _not_found(e)
    except (SalaryValidationError, ValueError) as e:
        raise _invalid(e)

    return SalaryPreviewResponse(
        employee_id=preview.employee_id,
        breakdown=SalaryBreakdownResponse.model_validate(preview.breakdown.to_dict()),
        aggregates=PeriodAggregatesResponse.model_validate(preview.aggregates),
        existing_salary_id=preview.existing.id if preview.existing else None,
    )


@router.post(
    "/process",
    response_model=SalaryRecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def process_salary(
    salaries: Salaries,
    user: AdminUser,
    payload: SalaryProcessRequest,
) -> SalaryRecordResponse:
    """Create the paid salary record for an employee and period."""
    try:
        record = await salaries.process(
            payload.employee_id,
            payload.period_start,
            payload.period_end,
            payload.overrides(),
            actor=user.email or user.id,
        )
    except SalaryNotFoundError as e:
        raise _not_found(e)
    except SalaryConflictError as e:
        raise _conflict(e)
    except (SalaryValidationError, ValueError) as e:
        raise _invalid(e)
    return SalaryRecordResponse.model_validate(record)


# ============================================================================
# Queries
# ============================================================================


@router.get("", response_model=SalaryListResponse)
async def list_salaries(
    salaries: Salaries,
    user: AdminUser,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    employee_id: int | None = None,
) -> SalaryListResponse:
    """List salary records, newest first."""
    records, total = await salaries.list_records(
        page=page,
        page_size=page_size,
        status=status_filter,
        employee_id=employee_id,
    )
    return SalaryListResponse(
        items=[SalaryRecordResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get(
    "/{salary_id}",
    response_model=SalaryRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_salary(
    salaries: Salaries,
    user: AdminUser,
    salary_id: Annotated[int, Path()],
) -> SalaryRecordResponse:
    """Get a specific salary record by ID."""
    try:
        record = await salaries.get(salary_id)
    except SalaryNotFoundError as e:
        raise _not_found(e)
    return SalaryRecordResponse.model_validate(record)


@router.get(
    "/{salary_id}/breakdown",
    response_model=SalaryDetailResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_salary_breakdown(
    salaries: Salaries,
    user: CurrentUser,
    salary_id: Annotated[int, Path()],
) -> SalaryDetailResponse:
    """Stored breakdown, period aggregates and correction history of a record.

    Employees may only view their own records.
    """
    try:
        view = await salaries.breakdown(salary_id)
    except SalaryNotFoundError as e:
        raise _not_found(e)

    if not user.is_admin and view.employee_user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view your own salary records",
        )

    return SalaryDetailResponse(
        salary=SalaryRecordResponse.model_validate(view.record),
        employee_name=view.employee_name,
        breakdown=view.breakdown,
        aggregates=PeriodAggregatesResponse.model_validate(view.aggregates),
        audit_logs=[AuditEntryResponse.model_validate(e) for e in view.history],
        active_salary_id=view.active_record_id,
    )


# ============================================================================
# Corrections and deletes
# ============================================================================


@router.post(
    "/correct",
    response_model=SalaryCorrectionResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def correct_salary(
    salaries: Salaries,
    user: AdminUser,
    payload: SalaryCorrectionRequest,
) -> SalaryCorrectionResponse:
    """Supersede a salary record with a recomputed one."""
    try:
        result = await salaries.correct(
            payload.salary_id,
            payload.overrides(),
            actor=user.email or user.id,
        )
    except SalaryNotFoundError as e:
        raise _not_found(e)
    except SalaryConflictError as e:
        raise _conflict(e)
    except SalaryValidationError as e:
        raise _invalid(e)

    return SalaryCorrectionResponse(
        original=SalaryRecordResponse.model_validate(result.original),
        corrected=SalaryRecordResponse.model_validate(result.corrected),
        breakdown=SalaryBreakdownResponse.model_validate(result.breakdown.to_dict()),
        audit_entry=AuditEntryResponse.model_validate(result.audit_entry),
    )


@router.delete(
    "/{salary_id}",
    response_model=SalaryRecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_salary(
    salaries: Salaries,
    user: AdminUser,
    salary_id: Annotated[int, Path()],
) -> SalaryRecordResponse:
    """Soft-delete a salary record."""
    try:
        record = await salaries.delete(salary_id, actor=user.email or user.id)
    except SalaryNotFoundError as e:
        raise _not_found(e)
    except SalaryConflictError as e:
        raise _conflict(e)
    return SalaryRecordResponse.model_validate(record)


# ============================================================================
# Employee self-service
# ============================================================================


@employee_router.get("/salaries", response_model=list[SalaryRecordResponse])
async def list_my_salaries(
    salaries: Salaries,
    user: CurrentUser,
) -> list[SalaryRecordResponse]:
    """The caller's own non-deleted salary records."""
    records = await salaries.list_for_user(user.id)
    return [SalaryRecordResponse.model_validate(r) for r in records]
