"""ORM models."""

from ems_payroll.models.attendance import AbsenceRecord, AttendanceRecord, SalesRecord
from ems_payroll.models.base import Base, TimestampMixin
from ems_payroll.models.employee import Employee, User
from ems_payroll.models.notification import Notification
from ems_payroll.models.salary import AuditLogImmutableError, SalaryAuditLog, SalaryRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "Employee",
    "AttendanceRecord",
    "SalesRecord",
    "AbsenceRecord",
    "SalaryRecord",
    "SalaryAuditLog",
    "AuditLogImmutableError",
    "Notification",
]
