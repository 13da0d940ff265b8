"""API routes."""

from ems_payroll.api.routes.health import router as health_router
from ems_payroll.api.routes.notifications import router as notifications_router
from ems_payroll.api.routes.salaries import employee_router
from ems_payroll.api.routes.salaries import router as salaries_router

__all__ = ["employee_router", "health_router", "notifications_router", "salaries_router"]
