"""Working-hour entry recording, correction and approval."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payroll_ledger.errors import (
    ConcurrencyConflict,
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from payroll_ledger.models import WorkingHourEntry
from payroll_ledger.services.state_machine import WorkingHourStateMachine, WorkingHourStatus

HOUR_PLACES = Decimal("0.01")

# Fields a correction may touch
CORRECTABLE_FIELDS = {
    "client_id",
    "project_id",
    "work_date",
    "start_time",
    "end_time",
    "total_hours",
    "hourly_rate",
    "notes",
}


def hours_between(start_time: time, end_time: time) -> Decimal:
    """Decimal hours from start_time to end_time on the same day."""
    start = datetime.combine(date.min, start_time)
    end = datetime.combine(date.min, end_time)
    if end <= start:
        raise ValidationError("End time must be after start time", field="end_time")
    seconds = Decimal((end - start).seconds)
    return (seconds / Decimal(3600)).quantize(HOUR_PLACES, rounding=ROUND_HALF_UP)


class WorkingHoursService:
    """Service for the working-hour entries that feed payroll.

    Entries move pending → approved | rejected. Approved entries are locked
    into a payroll record at creation time and flipped to paid by the
    payment transaction. Locked entries cannot be corrected.
    """

    def __init__(self, db: Session):
        self.db = db

    def record_entry(
        self,
        *,
        worker_id: UUID,
        work_date: date,
        hourly_rate: Decimal,
        total_hours: Decimal | None = None,
        start_time: time | None = None,
        end_time: time | None = None,
        client_id: UUID | None = None,
        project_id: UUID | None = None,
        notes: str | None = None,
        status: str = WorkingHourStatus.PENDING.value,
    ) -> WorkingHourEntry:
        """Record a new entry.

        When total_hours is omitted it is computed from start and end time.
        Entries may be recorded directly as approved by an administrator,
        never as rejected or paid.
        """
        if status not in (WorkingHourStatus.PENDING.value, WorkingHourStatus.APPROVED.value):
            raise ValidationError(f"Entries cannot be recorded as '{status}'", field="status")

        values = self._validated(
            {
                "work_date": work_date,
                "start_time": start_time,
                "end_time": end_time,
                "total_hours": total_hours,
                "hourly_rate": hourly_rate,
            }
        )
        entry = WorkingHourEntry(
            worker_id=worker_id,
            client_id=client_id,
            project_id=project_id,
            notes=notes,
            status=status,
            **values,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def get(self, entry_id: UUID) -> WorkingHourEntry:
        """Load an entry or raise NotFoundError."""
        entry = self.db.get(WorkingHourEntry, entry_id)
        if entry is None:
            raise NotFoundError("WorkingHourEntry", entry_id)
        return entry

    def correct_entry(self, entry_id: UUID, **changes: Any) -> WorkingHourEntry:
        """Correct a pending, unlocked entry."""
        unknown = set(changes) - CORRECTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be corrected: {sorted(unknown)}")

        entry = self.get(entry_id)
        if not WorkingHourStateMachine.can_correct(entry.status) or entry.is_locked:
            raise InvalidStateTransition(entry.status, entry.status, "only pending entries can be corrected")

        merged = {
            "work_date": entry.work_date,
            "start_time": entry.start_time,
            "end_time": entry.end_time,
            "total_hours": entry.total_hours,
            "hourly_rate": entry.hourly_rate,
        }
        merged.update({k: v for k, v in changes.items() if k in merged})
        if ("start_time" in changes or "end_time" in changes) and "total_hours" not in changes:
            merged["total_hours"] = None

        for field, value in self._validated(merged).items():
            setattr(entry, field, value)
        for field in ("client_id", "project_id", "notes"):
            if field in changes:
                setattr(entry, field, changes[field])

        self.db.flush()
        return entry

    def approve_entry(self, entry_id: UUID) -> WorkingHourEntry:
        """pending → approved."""
        return self._transition(entry_id, WorkingHourStatus.PENDING, WorkingHourStatus.APPROVED)

    def reject_entry(self, entry_id: UUID) -> WorkingHourEntry:
        """pending → rejected."""
        return self._transition(entry_id, WorkingHourStatus.PENDING, WorkingHourStatus.REJECTED)

    def delete_entry(self, entry_id: UUID) -> None:
        """Delete an entry that never made it into a payroll record."""
        entry = self.get(entry_id)
        if entry.is_locked or entry.status not in (
            WorkingHourStatus.PENDING.value,
            WorkingHourStatus.REJECTED.value,
        ):
            raise InvalidStateTransition(entry.status, "deleted", "entry already feeds payroll")
        self.db.delete(entry)
        self.db.flush()

    def list_entries(
        self,
        *,
        worker_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
        status: str | None = None,
    ) -> list[WorkingHourEntry]:
        """Entries matching the given filters, newest first."""
        query = select(WorkingHourEntry)
        if worker_id is not None:
            query = query.where(WorkingHourEntry.worker_id == worker_id)
        if start is not None:
            query = query.where(WorkingHourEntry.work_date >= start)
        if end is not None:
            query = query.where(WorkingHourEntry.work_date <= end)
        if status is not None:
            query = query.where(WorkingHourEntry.status == status)
        query = query.order_by(WorkingHourEntry.work_date.desc())
        return list(self.db.execute(query).scalars().all())

    def lock_for_payroll(self, entry_ids: Iterable[UUID], payroll_record_id: UUID) -> int:
        """Claim approved, unclaimed entries for a payroll record.

        Raises ConcurrencyConflict if any entry was claimed or changed in
        the meantime.
        """
        ids = list(entry_ids)
        if not ids:
            return 0

        result = self.db.execute(
            update(WorkingHourEntry)
            .where(
                WorkingHourEntry.working_hour_entry_id.in_(ids),
                WorkingHourEntry.payroll_record_id.is_(None),
                WorkingHourEntry.status == WorkingHourStatus.APPROVED.value,
            )
            .values(payroll_record_id=payroll_record_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(ids):
            raise ConcurrencyConflict(
                "working_hour_entry",
                payroll_record_id,
                f"locked {result.rowcount} of {len(ids)} entries",
            )
        return result.rowcount

    def release_for_payroll(self, payroll_record_id: UUID) -> int:
        """Release entries claimed by a payroll record that will not be paid."""
        result = self.db.execute(
            update(WorkingHourEntry)
            .where(
                WorkingHourEntry.payroll_record_id == payroll_record_id,
                WorkingHourEntry.status == WorkingHourStatus.APPROVED.value,
            )
            .values(payroll_record_id=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def mark_paid_for_payroll(self, payroll_record_id: UUID) -> int:
        """Flip entries claimed by a paid payroll record to paid."""
        result = self.db.execute(
            update(WorkingHourEntry)
            .where(
                WorkingHourEntry.payroll_record_id == payroll_record_id,
                WorkingHourEntry.status == WorkingHourStatus.APPROVED.value,
            )
            .values(status=WorkingHourStatus.PAID.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def _transition(
        self,
        entry_id: UUID,
        from_status: WorkingHourStatus,
        to_status: WorkingHourStatus,
    ) -> WorkingHourEntry:
        WorkingHourStateMachine.validate_transition(from_status, to_status)
        result = self.db.execute(
            update(WorkingHourEntry)
            .where(
                WorkingHourEntry.working_hour_entry_id == entry_id,
                WorkingHourEntry.status == from_status.value,
            )
            .values(status=to_status.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.db.execute(
                select(WorkingHourEntry.status).where(
                    WorkingHourEntry.working_hour_entry_id == entry_id
                )
            ).scalar_one_or_none()
            if current is None:
                raise NotFoundError("WorkingHourEntry", entry_id)
            raise InvalidStateTransition(current, to_status.value)

        return self.db.get(WorkingHourEntry, entry_id, populate_existing=True)

    def _validated(self, values: dict[str, Any]) -> dict[str, Any]:
        start_time = values.get("start_time")
        end_time = values.get("end_time")
        total_hours = values.get("total_hours")
        hourly_rate = values.get("hourly_rate")

        if values.get("work_date") is None:
            raise ValidationError("work_date is required", field="work_date")

        if total_hours is None:
            if start_time is None or end_time is None:
                raise ValidationError(
                    "total_hours or both start_time and end_time are required",
                    field="total_hours",
                )
            total_hours = hours_between(start_time, end_time)
        elif start_time is not None and end_time is not None:
            hours_between(start_time, end_time)

        total_hours = Decimal(str(total_hours))
        if total_hours < 0:
            raise ValidationError("Hours cannot be negative", field="total_hours")

        if hourly_rate is None:
            raise ValidationError("hourly_rate is required", field="hourly_rate")
        hourly_rate = Decimal(str(hourly_rate))
        if hourly_rate < 0:
            raise ValidationError("Hourly rate cannot be negative", field="hourly_rate")

        return {
            "work_date": values["work_date"],
            "start_time": start_time,
            "end_time": end_time,
            "total_hours": total_hours.quantize(HOUR_PLACES, rounding=ROUND_HALF_UP),
            "hourly_rate": hourly_rate,
        }
