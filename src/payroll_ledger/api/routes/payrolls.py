"""Payroll record API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_ledger.api.dependencies import AppClock, DbSession, Emitter, Orchestrator
from payroll_ledger.api.schemas import (
    ErrorResponse,
    PaymentRequest,
    PaymentResponse,
    PayrollCreate,
    PayrollResponse,
    PayrollUpdate,
)
from payroll_ledger.services.payroll_service import PayrollService

router = APIRouter(prefix="/payrolls", tags=["payrolls"])


# ============================================================================
# Payroll CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayrollResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
def create_payroll(
    db: DbSession,
    emitter: Emitter,
    clock: AppClock,
    payload: PayrollCreate,
) -> PayrollResponse:
    """Create a pending payroll record.

    Built from the worker's approved hours unless both total_hours and
    hourly_rate are given.
    """
    service = PayrollService(db, clock=clock, emitter=emitter)
    with emitter.batch():
        if payload.total_hours is not None and payload.hourly_rate is not None:
            record = service.create_payroll_from_values(
                payload.worker_id,
                payload.period_start,
                payload.period_end,
                total_hours=payload.total_hours,
                hourly_rate=payload.hourly_rate,
                deductions=payload.deductions,
            )
        else:
            record = service.create_payroll(
                payload.worker_id,
                payload.period_start,
                payload.period_end,
                deductions=payload.deductions,
            )
        db.commit()
    return PayrollResponse.model_validate(record)


@router.get("", response_model=list[PayrollResponse])
def list_payrolls(
    db: DbSession,
    worker_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[PayrollResponse]:
    """List payroll records, newest period first."""
    records = PayrollService(db).list_records(worker_id=worker_id, status=status_filter)
    return [PayrollResponse.model_validate(r) for r in records]


@router.get(
    "/{payroll_record_id}",
    response_model=PayrollResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_payroll(
    db: DbSession,
    payroll_record_id: Annotated[UUID, Path()],
) -> PayrollResponse:
    """Get a payroll record by ID."""
    return PayrollResponse.model_validate(PayrollService(db).get(payroll_record_id))


@router.patch(
    "/{payroll_record_id}",
    response_model=PayrollResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def update_payroll(
    db: DbSession,
    clock: AppClock,
    payroll_record_id: Annotated[UUID, Path()],
    payload: PayrollUpdate,
) -> PayrollResponse:
    """Edit hours, rate or deductions of a pending record."""
    record = PayrollService(db, clock=clock).update_pending(
        payroll_record_id, **payload.model_dump(exclude_unset=True)
    )
    db.commit()
    return PayrollResponse.model_validate(record)


# ============================================================================
# Payroll State Transitions
# ============================================================================


@router.post(
    "/{payroll_record_id}/approve",
    response_model=PayrollResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def approve_payroll(
    db: DbSession,
    emitter: Emitter,
    clock: AppClock,
    payroll_record_id: Annotated[UUID, Path()],
) -> PayrollResponse:
    """Approve a pending record. Amounts are frozen from here on."""
    with emitter.batch():
        record = PayrollService(db, clock=clock, emitter=emitter).approve(payroll_record_id)
        db.commit()
    return PayrollResponse.model_validate(record)


@router.post(
    "/{payroll_record_id}/void",
    response_model=PayrollResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def void_payroll(
    db: DbSession,
    emitter: Emitter,
    clock: AppClock,
    payroll_record_id: Annotated[UUID, Path()],
) -> PayrollResponse:
    """Void an unpaid record and release its working hours."""
    with emitter.batch():
        record = PayrollService(db, clock=clock, emitter=emitter).void(payroll_record_id)
        db.commit()
    return PayrollResponse.model_validate(record)


@router.post(
    "/{payroll_record_id}/pay",
    response_model=PaymentResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
def pay_payroll(
    orchestrator: Orchestrator,
    payroll_record_id: Annotated[UUID, Path()],
    payload: PaymentRequest | None = None,
) -> PaymentResponse:
    """Pay an approved record, from the primary account unless one is given."""
    payload = payload or PaymentRequest()
    result = orchestrator.pay(
        payroll_record_id, payload.bank_account_id, actor_id=payload.actor_id
    )
    return PaymentResponse.model_validate(result)
