"""Business logic services."""

from ems_payroll.services.notification_service import (
    BroadcastTargets,
    NotificationDispatcher,
    NotificationForbiddenError,
    NotificationNotFoundError,
    NotificationService,
    NotificationTargetError,
)
from ems_payroll.services.relay_client import RelayClient
from ems_payroll.services.salary_service import (
    CorrectionResult,
    SalaryBreakdownView,
    SalaryConflictError,
    SalaryNotFoundError,
    SalaryPreview,
    SalaryService,
)
from ems_payroll.services.state_machine import (
    InvalidTransitionError,
    SalaryStateMachine,
    SalaryStatus,
)

__all__ = [
    "BroadcastTargets",
    "CorrectionResult",
    "InvalidTransitionError",
    "NotificationDispatcher",
    "NotificationForbiddenError",
    "NotificationNotFoundError",
    "NotificationService",
    "NotificationTargetError",
    "RelayClient",
    "SalaryBreakdownView",
    "SalaryConflictError",
    "SalaryNotFoundError",
    "SalaryPreview",
    "SalaryService",
    "SalaryStateMachine",
    "SalaryStatus",
]
