"""API routes."""

from payroll_ledger.api.routes.accounts import router as accounts_router
from payroll_ledger.api.routes.health import router as health_router
from payroll_ledger.api.routes.payrolls import router as payrolls_router
from payroll_ledger.api.routes.reconciliation import router as reconciliation_router
from payroll_ledger.api.routes.working_hours import router as working_hours_router

__all__ = [
    "accounts_router",
    "health_router",
    "payrolls_router",
    "reconciliation_router",
    "working_hours_router",
]
