"""Working-hour entry API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_ledger.api.dependencies import DbSession
from payroll_ledger.api.schemas import (
    ErrorResponse,
    HoursSummaryResponse,
    WorkingHourCreate,
    WorkingHourListResponse,
    WorkingHourResponse,
)
from payroll_ledger.services.aggregation import WorkingHoursAggregator
from payroll_ledger.services.working_hours import WorkingHoursService

router = APIRouter(prefix="/working-hours", tags=["working-hours"])


@router.post(
    "",
    response_model=WorkingHourResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
def record_working_hours(db: DbSession, payload: WorkingHourCreate) -> WorkingHourResponse:
    """Record a working-hour entry."""
    entry = WorkingHoursService(db).record_entry(**payload.model_dump())
    db.commit()
    return WorkingHourResponse.model_validate(entry)


@router.get("", response_model=WorkingHourListResponse)
def list_working_hours(
    db: DbSession,
    worker_id: UUID | None = None,
    start: date | None = None,
    end: date | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> WorkingHourListResponse:
    """List working-hour entries with optional filters."""
    entries = WorkingHoursService(db).list_entries(
        worker_id=worker_id, start=start, end=end, status=status_filter
    )
    return WorkingHourListResponse(
        items=[WorkingHourResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get(
    "/aggregate",
    response_model=HoursSummaryResponse,
    responses={422: {"model": ErrorResponse}},
)
def aggregate_working_hours(
    db: DbSession,
    worker_id: UUID,
    start: date,
    end: date,
) -> HoursSummaryResponse:
    """Total approved hours and hours-weighted average rate for a period."""
    summary = WorkingHoursAggregator(db).aggregate(worker_id, start, end)
    return HoursSummaryResponse.model_validate(summary)


@router.get(
    "/{entry_id}",
    response_model=WorkingHourResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_working_hours(
    db: DbSession,
    entry_id: Annotated[UUID, Path()],
) -> WorkingHourResponse:
    """Get a working-hour entry by ID."""
    return WorkingHourResponse.model_validate(WorkingHoursService(db).get(entry_id))


@router.post(
    "/{entry_id}/approve",
    response_model=WorkingHourResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def approve_working_hours(
    db: DbSession,
    entry_id: Annotated[UUID, Path()],
) -> WorkingHourResponse:
    """Approve a pending entry so it counts towards payroll."""
    entry = WorkingHoursService(db).approve_entry(entry_id)
    db.commit()
    return WorkingHourResponse.model_validate(entry)


@router.post(
    "/{entry_id}/reject",
    response_model=WorkingHourResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def reject_working_hours(
    db: DbSession,
    entry_id: Annotated[UUID, Path()],
) -> WorkingHourResponse:
    """Reject a pending entry."""
    entry = WorkingHoursService(db).reject_entry(entry_id)
    db.commit()
    return WorkingHourResponse.model_validate(entry)
