"""Reconciliation API endpoint."""

from fastapi import APIRouter

from payroll_ledger.api.dependencies import AppClock, DbSession, Emitter
from payroll_ledger.api.schemas import ReconciliationResponse
from payroll_ledger.services.reconciliation import ReconciliationService

router = APIRouter(prefix="/reconciliation", tags=["reconciliation"])


@router.post("", response_model=ReconciliationResponse)
def run_reconciliation(
    db: DbSession,
    emitter: Emitter,
    clock: AppClock,
) -> ReconciliationResponse:
    """Cross-check the ledger against payroll records. Read-only."""
    report = ReconciliationService(db, emitter=emitter, clock=clock).run()
    return ReconciliationResponse(**report.to_dict())
