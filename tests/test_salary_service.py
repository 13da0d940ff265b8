"""Tests for salary processing, corrections, deletes and audit history."""

from datetime import date
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import event, func, select

from conftest import RecordingRelay
from ems_payroll.calculators import SalaryValidationError
from ems_payroll.models import AuditLogImmutableError, Notification, SalaryAuditLog, SalaryRecord
from ems_payroll.services.notification_service import NotificationDispatcher
from ems_payroll.services.relay_client import RelayClient
from ems_payroll.services.salary_service import (
    SalaryConflictError,
    SalaryNotFoundError,
    SalaryService,
    month_bounds,
)
from ems_payroll.services.state_machine import InvalidTransitionError

MARCH_START = date(2025, 3, 1)
MARCH_END = date(2025, 3, 31)


@pytest_asyncio.fixture
async def paid(salary_service, period_facts, admin_user):
    """A processed March salary: 2000 + 200 bonus + 200 overtime - 50 absence."""
    return await salary_service.process(period_facts.id, MARCH_START, MARCH_END, actor="admin@example.com")


async def count(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))


@pytest.fixture
def failing_audit_insert(session):
    """Make every flush that inserts an audit entry fail."""

    def fail(sync_session, flush_context, instances):
        if any(isinstance(obj, SalaryAuditLog) for obj in sync_session.new):
            raise RuntimeError("disk full")

    event.listen(session.sync_session, "before_flush", fail)
    yield
    event.remove(session.sync_session, "before_flush", fail)


async def stored_state(session, salary_id):
    return (
        await session.execute(
            select(SalaryRecord.status, SalaryRecord.deleted).where(SalaryRecord.id == salary_id)
        )
    ).one()


class TestProcess:
    """Test creating the initial salary record."""

    async def test_process_uses_period_aggregates(self, paid):
        assert paid.amount == Decimal("2350.00")
        assert paid.base_salary == Decimal("2000.00")
        assert paid.status == "paid"
        assert paid.deleted is False
        assert paid.correction_of is None
        assert paid.lineage_id == paid.id
        assert Decimal(paid.metadata_json["inputs"]["total_worked_hours"]) == Decimal("170")
        assert Decimal(paid.metadata_json["inputs"]["sales_total"]) == Decimal("4000")
        assert paid.metadata_json["total"] == "2350.00"

    async def test_overrides_replace_defaults(self, salary_service, period_facts, admin_user):
        record = await salary_service.process(
            period_facts.id, MARCH_START, MARCH_END, {"base_salary": "3000", "absence_rate": 0}
        )
        assert record.amount == Decimal("3400.00")

    async def test_second_process_for_period_conflicts(self, salary_service, paid):
        with pytest.raises(SalaryConflictError):
            await salary_service.process(paid.employee_id, MARCH_START, MARCH_END)

    async def test_process_allowed_after_delete(self, salary_service, paid):
        await salary_service.delete(paid.id)
        again = await salary_service.process(paid.employee_id, MARCH_START, MARCH_END)
        assert again.id != paid.id
        assert again.lineage_id == again.id

    async def test_unknown_employee(self, salary_service):
        with pytest.raises(SalaryNotFoundError):
            await salary_service.process(999, MARCH_START, MARCH_END)

    async def test_preview_writes_nothing(self, salary_service, session, period_facts):
        preview = await salary_service.preview(period_facts.id, MARCH_START, MARCH_END)

        assert preview.breakdown.total == Decimal("2350.00")
        assert preview.aggregates.attendance_count == 2
        assert preview.aggregates.sales_count == 2
        assert preview.aggregates.absent_days == Decimal("1")
        assert preview.existing is None
        assert await count(session, SalaryRecord) == 0

    async def test_preview_reports_existing_record(self, salary_service, paid):
        preview = await salary_service.preview(paid.employee_id, MARCH_START, MARCH_END)
        assert preview.existing.id == paid.id

    def test_month_bounds(self):
        assert month_bounds(date(2024, 2, 17)) == (date(2024, 2, 1), date(2024, 2, 29))


class TestCorrect:
    """Test superseding a record with a corrected one."""

    async def test_correct_creates_successor(self, salary_service, paid):
        result = await salary_service.correct(paid.id, {"sales_total": "10000"}, actor="admin@example.com")

        assert result.original.id == paid.id
        assert result.original.status == "corrected"
        assert result.corrected.status == "paid"
        assert result.corrected.correction_of == paid.id
        assert result.corrected.lineage_id == paid.lineage_id
        assert result.corrected.period_start == paid.period_start
        assert result.corrected.amount == Decimal("2650.00")

        entry = result.audit_entry
        assert entry.action == "correct"
        assert entry.salary_id == result.corrected.id
        assert entry.changed_by == "admin@example.com"
        assert entry.old_value["id"] == paid.id
        assert entry.old_value["status"] == "paid"
        assert entry.old_value["amount"] == "2350.00"
        assert entry.new_value["id"] == result.corrected.id
        assert entry.new_value["correction_of"] == paid.id

    async def test_omitted_inputs_fall_back_to_stored(self, salary_service, paid):
        result = await salary_service.correct(paid.id, {"absent_days": 0})
        # Hours and sales still come from the original snapshot
        assert result.corrected.amount == Decimal("2400.00")
        assert Decimal(result.corrected.metadata_json["inputs"]["total_worked_hours"]) == Decimal("170")

    async def test_chained_corrections(self, salary_service, paid):
        first = await salary_service.correct(paid.id, {"bonus_percent": 10})
        second = await salary_service.correct(first.corrected.id, {"bonus_percent": 0})

        assert second.corrected.correction_of == first.corrected.id
        assert second.corrected.lineage_id == paid.id
        assert second.corrected.amount == Decimal("2150.00")

        active = await salary_service.active_record(paid.id)
        assert active.id == second.corrected.id

    async def test_correcting_same_original_twice_conflicts(self, salary_service, session, paid):
        await salary_service.correct(paid.id, {"bonus_percent": 10})

        with pytest.raises(SalaryConflictError, match="already been corrected") as exc_info:
            await salary_service.correct(paid.id, {"bonus_percent": 20})
        assert isinstance(exc_info.value.__cause__, InvalidTransitionError)

        assert await count(session, SalaryAuditLog) == 1
        assert await count(session, SalaryRecord) == 2

    async def test_unknown_salary(self, salary_service):
        with pytest.raises(SalaryNotFoundError):
            await salary_service.correct(12345, {})

    async def test_invalid_inputs_leave_original_untouched(self, salary_service, session, paid):
        paid_id = paid.id
        with pytest.raises(SalaryValidationError):
            await salary_service.correct(paid_id, {"bonus_percent": 150})

        # The rollback expired every loaded instance
        record = await salary_service.get(paid_id)
        assert record.status == "paid"
        assert await count(session, SalaryRecord) == 1
        assert await count(session, SalaryAuditLog) == 0

    async def test_failed_audit_write_rolls_back_correction(
        self, salary_service, session, paid, failing_audit_insert
    ):
        paid_id = paid.id
        with pytest.raises(RuntimeError, match="disk full"):
            await salary_service.correct(paid_id, {"bonus_percent": 10})

        # The original was already flushed as corrected before the audit insert
        state = await stored_state(session, paid_id)
        assert state.status == "paid"
        assert state.deleted is False
        assert await count(session, SalaryRecord) == 1
        assert await count(session, SalaryAuditLog) == 0

    async def test_deleted_record_cannot_be_corrected(self, salary_service, paid):
        await salary_service.delete(paid.id)
        with pytest.raises(SalaryConflictError):
            await salary_service.correct(paid.id, {})


class TestDelete:
    """Test soft deletes."""

    async def test_delete_is_soft_and_audited(self, salary_service, session, paid):
        record = await salary_service.delete(paid.id, actor="admin@example.com")

        assert record.deleted is True
        assert record.status == "deleted"
        assert await count(session, SalaryRecord) == 1

        history = await salary_service.history(paid.id)
        assert [e.action for e in history] == ["delete"]
        assert history[0].old_value["deleted"] is False
        assert history[0].new_value["deleted"] is True

    async def test_double_delete_conflicts(self, salary_service, paid):
        await salary_service.delete(paid.id)
        with pytest.raises(SalaryConflictError):
            await salary_service.delete(paid.id)

    async def test_failed_audit_write_rolls_back_delete(
        self, salary_service, session, paid, failing_audit_insert
    ):
        paid_id = paid.id
        with pytest.raises(RuntimeError, match="disk full"):
            await salary_service.delete(paid_id)

        state = await stored_state(session, paid_id)
        assert state.status == "paid"
        assert state.deleted is False
        assert await count(session, SalaryAuditLog) == 0

    async def test_delete_corrected_record_keeps_trail(self, salary_service, paid):
        result = await salary_service.correct(paid.id, {"bonus_percent": 10})
        deleted = await salary_service.delete(paid.id)

        assert deleted.status == "deleted"
        history = await salary_service.history(result.corrected.id)
        assert [e.action for e in history] == ["correct", "delete"]
        assert (await salary_service.active_record(paid.id)).id == result.corrected.id

    async def test_delete_unknown(self, salary_service):
        with pytest.raises(SalaryNotFoundError):
            await salary_service.delete(404)


class TestHistory:
    """Test audit trail retrieval."""

    async def test_history_in_creation_order_without_duplicates(self, salary_service, paid):
        first = await salary_service.correct(paid.id, {"bonus_percent": 10})
        second = await salary_service.correct(first.corrected.id, {"bonus_percent": 0})
        await salary_service.delete(second.corrected.id)

        history = await salary_service.history(second.corrected.id)

        assert [e.action for e in history] == ["correct", "correct", "delete"]
        assert [e.salary_id for e in history] == [
            first.corrected.id,
            second.corrected.id,
            second.corrected.id,
        ]
        ids = [e.id for e in history]
        assert ids == sorted(set(ids))

    async def test_superseded_version_shows_whole_lineage(self, salary_service, paid):
        first = await salary_service.correct(paid.id, {"bonus_percent": 10})
        second = await salary_service.correct(first.corrected.id, {"bonus_percent": 0})
        expected = [first.corrected.id, second.corrected.id]

        for version in (paid.id, first.corrected.id, second.corrected.id):
            history = await salary_service.history(version)
            assert [e.salary_id for e in history] == expected

    async def test_breakdown(self, salary_service, paid):
        result = await salary_service.correct(paid.id, {"bonus_percent": 10})

        view = await salary_service.breakdown(result.corrected.id)

        assert view.record.id == result.corrected.id
        assert view.employee_name == "Eli Employee"
        assert view.breakdown["total"] == str(result.corrected.amount)
        assert view.aggregates.total_worked_hours == Decimal("170")
        assert len(view.history) == 1
        assert view.active_record_id == result.corrected.id

    async def test_audit_entries_are_immutable(self, salary_service, session, paid):
        result = await salary_service.correct(paid.id, {"bonus_percent": 10})
        entry = result.audit_entry

        entry.changed_by = "someone-else"
        with pytest.raises(AuditLogImmutableError):
            await session.flush()
        await session.rollback()

        await session.delete(entry)
        with pytest.raises(AuditLogImmutableError):
            await session.flush()
        await session.rollback()


class TestNotificationSideEffects:
    """Test that notifications follow salary changes without blocking them."""

    async def test_correction_notifies_both_parties(
        self, salary_service, session, relay_client, relay_recorder, paid, admin_user, employee_user
    ):
        await salary_service.correct(paid.id, {"bonus_percent": 10})
        await relay_client.drain()

        rows = (
            await session.execute(
                select(Notification).where(Notification.type.like("%salary_corrected"))
            )
        ).scalars().all()
        by_type = {n.type: n for n in rows}
        assert by_type["employee_salary_corrected"].user_id == employee_user.id
        assert by_type["admin_salary_corrected"].user_id == admin_user.id
        assert "$2,550.00" in by_type["employee_salary_corrected"].message

        assert sorted(relay_recorder.events) == [
            "admin_salary_corrected",
            "employee_salary_corrected",
        ]
        employee_payload = next(
            p for p in relay_recorder.payloads if p["event"] == "employee_salary_corrected"
        )
        assert employee_payload["data"]["broadcastTo"] == {"admin": False, "employee": True}
        assert employee_payload["data"]["employeeEmail"] == "emp@example.com"
        assert relay_recorder.requests[0].headers["X-Internal-Api-Key"] == "internal-test-key"

    async def test_processing_persists_without_broadcast(
        self, salary_service, session, relay_client, relay_recorder, paid
    ):
        await relay_client.drain()
        assert await count(session, Notification) == 2
        assert relay_recorder.requests == []

    async def test_relay_unreachable_does_not_fail_correction(
        self, session, settings, period_facts, admin_user
    ):
        recorder = RecordingRelay(fail=True)
        relay = RelayClient("http://relay.test", transport=httpx.MockTransport(recorder))
        service = SalaryService(session, NotificationDispatcher(session, relay), settings)

        record = await service.process(period_facts.id, MARCH_START, MARCH_END)
        result = await service.correct(record.id, {"bonus_percent": 10})
        await relay.aclose()

        assert result.corrected.status == "paid"
        assert len(recorder.requests) == 2
        assert (await service.get(record.id)).status == "corrected"

    async def test_relay_error_status_does_not_fail_delete(
        self, session, settings, period_facts, admin_user
    ):
        recorder = RecordingRelay(status_code=500)
        relay = RelayClient("http://relay.test", transport=httpx.MockTransport(recorder))
        service = SalaryService(session, NotificationDispatcher(session, relay), settings)

        record = await service.process(period_facts.id, MARCH_START, MARCH_END)
        deleted = await service.delete(record.id)
        await relay.aclose()

        assert deleted.deleted is True
        assert sorted(recorder.events) == ["admin_salary_deleted", "employee_salary_deleted"]

    async def test_missing_admin_is_logged_not_raised(self, salary_service, session, period_facts):
        record = await salary_service.process(period_facts.id, MARCH_START, MARCH_END)
        result = await salary_service.correct(record.id, {"bonus_percent": 10})

        assert result.corrected.amount == Decimal("2550.00")
        types = (await session.execute(select(Notification.type))).scalars().all()
        assert "admin_salary_corrected" not in types
        assert "employee_salary_corrected" in types

    async def test_without_dispatcher(self, session, settings, period_facts):
        service = SalaryService(session, None, settings)
        record = await service.process(period_facts.id, MARCH_START, MARCH_END)
        await service.correct(record.id, {"bonus_percent": 10})
        assert await count(session, Notification) == 0
