"""Salary lifecycle: processing, corrections, soft deletes and audit history."""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ems_payroll.calculators import (
    PeriodAggregates,
    PeriodAggregator,
    SalaryBreakdown,
    SalaryInputs,
    calculate_salary,
)
from ems_payroll.config import Settings, get_settings
from ems_payroll.database import transaction
from ems_payroll.models import Employee, SalaryAuditLog, SalaryRecord, User
from ems_payroll.services.notification_service import (
    BroadcastTargets,
    NotificationDispatcher,
)
from ems_payroll.services.state_machine import (
    InvalidTransitionError,
    SalaryStateMachine,
    SalaryStatus,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "admin"


class SalaryNotFoundError(Exception):
    """Raised when a salary record or its employee does not exist."""


class SalaryConflictError(Exception):
    """Raised when an operation would overwrite an already-settled record."""

    def __init__(self, salary_id: int | None, message: str):
        self.salary_id = salary_id
        super().__init__(message)


@dataclass
class CorrectionResult:
    """Outcome of a successful correction."""

    original: SalaryRecord
    corrected: SalaryRecord
    breakdown: SalaryBreakdown
    audit_entry: SalaryAuditLog


@dataclass
class SalaryPreview:
    """Computed but unsaved salary for an employee and period."""

    employee_id: int
    breakdown: SalaryBreakdown
    aggregates: PeriodAggregates
    existing: SalaryRecord | None = None


@dataclass
class SalaryBreakdownView:
    """Everything needed to render a record and its correction history."""

    record: SalaryRecord
    employee_name: str
    employee_user_id: str | None
    breakdown: dict[str, Any]
    aggregates: PeriodAggregates
    history: list[SalaryAuditLog] = field(default_factory=list)
    active_record_id: int | None = None


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the month containing ``day``."""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


class SalaryService:
    """Service for the salary record lifecycle.

    Operations:
    - preview: compute pay for a period without writing anything
    - process: create the initial ``paid`` record of a lineage
    - correct: supersede a record with a recomputed successor
    - delete: soft-delete a record
    - history / breakdown: audit trail of a lineage, oldest first

    Corrections and deletes write the record change and its audit entry in
    one transaction. Notifications go out after commit and can never undo
    the salary change.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: NotificationDispatcher | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.aggregator = PeriodAggregator(session)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, salary_id: int) -> SalaryRecord:
        record = await self.session.get(SalaryRecord, salary_id)
        if record is None:
            raise SalaryNotFoundError(f"Salary {salary_id} not found")
        return record

    async def list_records(
        self,
        page: int = 1,
        page_size: int = 50,
        status: str | None = None,
        employee_id: int | None = None,
    ) -> tuple[list[SalaryRecord], int]:
        """List salary records newest first, with the unpaginated total."""
        query = select(SalaryRecord)
        if status:
            query = query.where(SalaryRecord.status == status)
        if employee_id is not None:
            query = query.where(SalaryRecord.employee_id == employee_id)

        total = await self.session.scalar(
            select(func.count()).select_from(query.subquery())
        ) or 0

        query = query.order_by(SalaryRecord.created_at.desc(), SalaryRecord.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.session.execute(query)
        return list(result.scalars().all()), total

    async def list_for_user(self, user_id: str) -> list[SalaryRecord]:
        """Non-deleted salaries of the employee owned by ``user_id``."""
        employee = await self._employee_for_user(user_id)
        if employee is None:
            return []
        result = await self.session.execute(
            select(SalaryRecord)
            .where(
                SalaryRecord.employee_id == employee.id,
                SalaryRecord.deleted.is_(False),
            )
            .order_by(SalaryRecord.period_start.desc(), SalaryRecord.id.desc())
        )
        return list(result.scalars().all())

    async def active_record(self, lineage_id: int) -> SalaryRecord | None:
        """Latest record of a lineage that is neither corrected nor deleted."""
        result = await self.session.execute(
            select(SalaryRecord)
            .where(
                SalaryRecord.lineage_id == lineage_id,
                SalaryRecord.deleted.is_(False),
                SalaryRecord.status.in_([s.value for s in SalaryStateMachine.ACTIVE]),
            )
            .order_by(SalaryRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def history(self, salary_id: int) -> list[SalaryAuditLog]:
        """Audit entries of every version in ``salary_id``'s lineage, oldest first.

        Correct entries are stored under the successor's id, so the lineage
        is read as a whole: a superseded version shows the corrections made
        after it as well.
        """
        record = await self.get(salary_id)

        if record.lineage_id is not None:
            result = await self.session.execute(
                select(SalaryRecord.id).where(SalaryRecord.lineage_id == record.lineage_id)
            )
            return await self._audit_entries(list(result.scalars().all()))

        chain_ids: list[int] = []
        current: SalaryRecord | None = record
        while current is not None and current.id not in chain_ids:
            chain_ids.append(current.id)
            if current.correction_of is None:
                break
            current = await self.session.get(SalaryRecord, current.correction_of)
        return await self._audit_entries(chain_ids)

    async def _audit_entries(self, salary_ids: list[int]) -> list[SalaryAuditLog]:
        result = await self.session.execute(
            select(SalaryAuditLog)
            .where(SalaryAuditLog.salary_id.in_(salary_ids))
            .order_by(SalaryAuditLog.changed_at.asc(), SalaryAuditLog.id.asc())
        )
        return list(result.scalars().all())

    async def breakdown(self, salary_id: int) -> SalaryBreakdownView:
        """Stored breakdown, period aggregates and history for one record."""
        record = await self.get(salary_id)
        aggregates = await self.aggregator.aggregate(
            record.employee_id, record.period_start, record.period_end
        )
        history = await self.history(salary_id)
        active = await self.active_record(record.lineage_id or record.id)
        owner = await self._employee_user(record.employee_id)

        return SalaryBreakdownView(
            record=record,
            employee_name=_display_name(owner),
            employee_user_id=owner.id if owner else None,
            breakdown=dict(record.metadata_json or {}),
            aggregates=aggregates,
            history=history,
            active_record_id=active.id if active else None,
        )

    # ------------------------------------------------------------------
    # Calculation
    # ------------------------------------------------------------------

    def default_inputs(self, aggregates: PeriodAggregates) -> SalaryInputs:
        """Configured rates combined with the period's aggregated facts."""
        return SalaryInputs(
            base_salary=self.settings.default_base_salary,
            sales_total=aggregates.sales_total,
            bonus_percent=self.settings.default_bonus_percent,
            total_worked_hours=aggregates.total_worked_hours,
            overtime_rate=self.settings.default_overtime_rate,
            undertime_rate=self.settings.default_undertime_rate,
            absence_rate=self.settings.default_absence_rate,
            absent_days=aggregates.absent_days,
        )

    async def preview(
        self,
        employee_id: int,
        period_start: date | None = None,
        period_end: date | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> SalaryPreview:
        """Compute a salary without persisting it.

        Raises:
            SalaryNotFoundError: If the employee does not exist.
            SalaryValidationError: If the inputs are out of range.
        """
        await self._require_employee(employee_id)
        period_start, period_end = _resolve_period(period_start, period_end)

        aggregates = await self.aggregator.aggregate(employee_id, period_start, period_end)
        inputs = self.default_inputs(aggregates).with_overrides(overrides or {})
        breakdown = calculate_salary(inputs)
        existing = await self._active_for_period(employee_id, period_start, period_end)

        return SalaryPreview(
            employee_id=employee_id,
            breakdown=breakdown,
            aggregates=aggregates,
            existing=existing,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def process(
        self,
        employee_id: int,
        period_start: date | None = None,
        period_end: date | None = None,
        overrides: dict[str, Any] | None = None,
        actor: str | None = None,
    ) -> SalaryRecord:
        """Create the initial ``paid`` record for an employee and period.

        Raises:
            SalaryNotFoundError: If the employee does not exist.
            SalaryConflictError: If the period already has an active record.
            SalaryValidationError: If the inputs are out of range.
        """
        period_start, period_end = _resolve_period(period_start, period_end)

        async with transaction(self.session):
            await self._require_employee(employee_id)
            existing = await self._active_for_period(employee_id, period_start, period_end)
            if existing is not None:
                raise SalaryConflictError(
                    existing.id, "Salary already paid for this period."
                )

            aggregates = await self.aggregator.aggregate(employee_id, period_start, period_end)
            inputs = self.default_inputs(aggregates).with_overrides(overrides or {})
            breakdown = calculate_salary(inputs)

            record = SalaryRecord(
                employee_id=employee_id,
                period_start=period_start,
                period_end=period_end,
                pay_date=period_start,
                base_salary=breakdown.base_salary,
                amount=breakdown.total,
                status=SalaryStatus.PAID.value,
                metadata_json=breakdown.to_dict(),
                deleted=False,
            )
            self.session.add(record)
            await self.session.flush()
            record.lineage_id = record.id

        logger.info(
            "Salary processed: id=%s employee=%s period=%s..%s amount=%s by=%s",
            record.id,
            employee_id,
            period_start,
            period_end,
            record.amount,
            actor or SYSTEM_ACTOR,
        )

        owner = await self._employee_user(employee_id)
        await self._notify_parties(
            employee_id=employee_id,
            employee_type="employee_salary_created",
            employee_message=(
                f"Your salary for {record.pay_date.isoformat()} has been processed. "
                f"Amount: {_money(record.amount)}"
            ),
            admin_type="admin_salary_created",
            admin_message=(
                f"Salary processed for {_display_name(owner)}: "
                f"{_money(record.amount)} for {record.pay_date.isoformat()}"
            ),
            broadcast=False,
        )
        return record

    async def correct(
        self,
        salary_id: int,
        overrides: dict[str, Any] | None = None,
        actor: str | None = None,
    ) -> CorrectionResult:
        """Supersede a salary record with a recomputed successor.

        Inputs missing from ``overrides`` are taken from the original
        record's stored inputs.

        Raises:
            SalaryNotFoundError: If ``salary_id`` does not exist.
            SalaryConflictError: If the record is already corrected or deleted.
            SalaryValidationError: If the new inputs are out of range.
        """
        async with transaction(self.session):
            original = await self.get(salary_id)
            try:
                SalaryStateMachine.validate_transition(original.status, SalaryStatus.CORRECTED)
            except InvalidTransitionError as e:
                if original.status == SalaryStatus.CORRECTED.value:
                    message = "This salary has already been corrected."
                else:
                    message = f"Salary in status '{original.status}' cannot be corrected."
                raise SalaryConflictError(salary_id, message) from e

            inputs = (await self._stored_inputs(original)).with_overrides(overrides or {})
            breakdown = calculate_salary(inputs)

            old_snapshot = original.snapshot()
            original.status = SalaryStatus.CORRECTED.value

            corrected = SalaryRecord(
                employee_id=original.employee_id,
                period_start=original.period_start,
                period_end=original.period_end,
                pay_date=original.pay_date,
                base_salary=breakdown.base_salary,
                amount=breakdown.total,
                status=SalaryStatus.PAID.value,
                correction_of=original.id,
                lineage_id=original.lineage_id or original.id,
                metadata_json=breakdown.to_dict(),
                deleted=False,
            )
            self.session.add(corrected)
            await self.session.flush()

            audit_entry = SalaryAuditLog(
                salary_id=corrected.id,
                action="correct",
                old_value=old_snapshot,
                new_value=corrected.snapshot(),
                changed_by=actor or SYSTEM_ACTOR,
            )
            self.session.add(audit_entry)
            await self.session.flush()

        logger.info(
            "Salary correction: original=%s new=%s amount=%s by=%s",
            original.id,
            corrected.id,
            corrected.amount,
            audit_entry.changed_by,
        )

        owner = await self._employee_user(original.employee_id)
        await self._notify_parties(
            employee_id=original.employee_id,
            employee_type="employee_salary_corrected",
            employee_message=(
                f"Your salary for {original.pay_date.isoformat()} has been corrected. "
                f"New amount: {_money(corrected.amount)}"
            ),
            admin_type="admin_salary_corrected",
            admin_message=(
                f"Salary corrected for {_display_name(owner)} for "
                f"{original.pay_date.isoformat()}. New amount: {_money(corrected.amount)}"
            ),
        )

        return CorrectionResult(
            original=original,
            corrected=corrected,
            breakdown=breakdown,
            audit_entry=audit_entry,
        )

    async def delete(self, salary_id: int, actor: str | None = None) -> SalaryRecord:
        """Soft-delete a salary record and log it.

        Raises:
            SalaryNotFoundError: If ``salary_id`` does not exist.
            SalaryConflictError: If the record is already deleted.
        """
        async with transaction(self.session):
            record = await self.get(salary_id)
            try:
                SalaryStateMachine.validate_transition(record.status, SalaryStatus.DELETED)
            except InvalidTransitionError as e:
                raise SalaryConflictError(
                    salary_id, "This salary has already been deleted."
                ) from e

            old_snapshot = record.snapshot()
            record.deleted = True
            record.status = SalaryStatus.DELETED.value
            await self.session.flush()

            audit_entry = SalaryAuditLog(
                salary_id=record.id,
                action="delete",
                old_value=old_snapshot,
                new_value=record.snapshot(),
                changed_by=actor or SYSTEM_ACTOR,
            )
            self.session.add(audit_entry)
            await self.session.flush()

        logger.info("Salary soft-deleted: id=%s by=%s", record.id, audit_entry.changed_by)

        owner = await self._employee_user(record.employee_id)
        await self._notify_parties(
            employee_id=record.employee_id,
            employee_type="employee_salary_deleted",
            employee_message=(
                f"Your salary record for {record.pay_date.isoformat()} has been deleted."
            ),
            admin_type="admin_salary_deleted",
            admin_message=(
                f"Salary record deleted for {_display_name(owner)} for "
                f"{record.pay_date.isoformat()}"
            ),
        )
        return record

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require_employee(self, employee_id: int) -> Employee:
        employee = await self.session.get(Employee, employee_id)
        if employee is None:
            raise SalaryNotFoundError(f"Employee {employee_id} not found")
        return employee

    async def _employee_user(self, employee_id: int) -> User | None:
        result = await self.session.execute(
            select(User)
            .join(Employee, Employee.user_id == User.id)
            .where(Employee.id == employee_id)
        )
        return result.scalar_one_or_none()

    async def _employee_for_user(self, user_id: str) -> Employee | None:
        result = await self.session.execute(
            select(Employee).where(Employee.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _active_for_period(
        self, employee_id: int, period_start: date, period_end: date
    ) -> SalaryRecord | None:
        result = await self.session.execute(
            select(SalaryRecord)
            .where(
                SalaryRecord.employee_id == employee_id,
                SalaryRecord.period_start == period_start,
                SalaryRecord.period_end == period_end,
                SalaryRecord.deleted.is_(False),
                SalaryRecord.status.in_([s.value for s in SalaryStateMachine.ACTIVE]),
            )
            .order_by(SalaryRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _stored_inputs(self, record: SalaryRecord) -> SalaryInputs:
        stored = (record.metadata_json or {}).get("inputs")
        if stored:
            return SalaryInputs.from_dict(stored)
        # Records without a stored snapshot fall back to today's aggregates
        aggregates = await self.aggregator.aggregate(
            record.employee_id, record.period_start, record.period_end
        )
        return self.default_inputs(aggregates).with_overrides(
            {"base_salary": record.base_salary}
        )

    async def _first_admin(self) -> User | None:
        result = await self.session.execute(
            select(User)
            .where(User.role == "admin")
            .order_by(User.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _notify_parties(
        self,
        *,
        employee_id: int,
        employee_type: str,
        employee_message: str,
        admin_type: str,
        admin_message: str,
        broadcast: bool = True,
    ) -> None:
        """Notify the employee and the admin. Failures are logged, never raised."""
        if self.dispatcher is None:
            return

        try:
            await self.dispatcher.notify(
                employee_id=employee_id,
                type=employee_type,
                message=employee_message,
                action_url="/employee/salary",
                action_label="View Salary",
                broadcast_to=BroadcastTargets(employee=True) if broadcast else None,
            )
        except Exception:
            logger.exception("Failed to notify employee %s of %s", employee_id, employee_type)

        try:
            admin = await self._first_admin()
            if admin is None:
                logger.warning("No admin user to notify of %s", admin_type)
                return
            await self.dispatcher.notify(
                user_id=admin.id,
                type=admin_type,
                message=admin_message,
                action_url="/admin/salaries",
                action_label="View Salaries",
                broadcast_to=BroadcastTargets(admin=True) if broadcast else None,
            )
        except Exception:
            logger.exception("Failed to notify admin of %s", admin_type)


def _resolve_period(
    period_start: date | None, period_end: date | None
) -> tuple[date, date]:
    if period_start is None and period_end is None:
        return month_bounds(date.today())
    if period_start is None or period_end is None:
        start, end = month_bounds(period_start or period_end)  # type: ignore[arg-type]
        return period_start or start, period_end or end
    return period_start, period_end


def _display_name(user: User | None) -> str:
    return user.display_name if user is not None else "Unknown"


def _money(amount: Decimal) -> str:
    return f"${amount:,.2f}"
