"""Working-hours aggregation for payroll creation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_ledger.errors import ValidationError
from payroll_ledger.models import WorkingHourEntry
from payroll_ledger.services.state_machine import WorkingHourStatus

RATE_PLACES = Decimal("0.0001")


@dataclass(frozen=True)
class HoursSummary:
    """Approved hours for one worker over one date range."""

    worker_id: UUID
    period_start: date
    period_end: date
    total_hours: Decimal
    average_rate: Decimal
    gross_amount: Decimal
    entry_ids: tuple[UUID, ...] = ()

    @property
    def entry_count(self) -> int:
        return len(self.entry_ids)


def summarize(entries: Iterable[WorkingHourEntry]) -> tuple[Decimal, Decimal, Decimal]:
    """Total hours, hours-weighted average rate and sum of hours x rate.

    The average is sum(hours * rate) / sum(hours), or 0 when no hours were
    worked.
    """
    total_hours = Decimal("0")
    weighted = Decimal("0")
    for entry in entries:
        hours = Decimal(str(entry.total_hours))
        rate = Decimal(str(entry.hourly_rate))
        total_hours += hours
        weighted += hours * rate

    if total_hours == 0:
        return Decimal("0"), Decimal("0"), Decimal("0")

    average_rate = (weighted / total_hours).quantize(RATE_PLACES, rounding=ROUND_HALF_UP)
    return total_hours, average_rate, weighted


class WorkingHoursAggregator:
    """Sums approved working-hour entries into payroll inputs.

    The result is a pure function of the approved entries at call time.
    Entries approved afterwards are not picked up; callers re-aggregate.
    """

    def __init__(self, db: Session):
        self.db = db

    def aggregate(
        self,
        worker_id: UUID,
        start: date,
        end: date,
        *,
        unlocked_only: bool = False,
    ) -> HoursSummary:
        """Aggregate approved hours for a worker over [start, end].

        Args:
            worker_id: Worker whose entries are summed
            start: First day of the range (inclusive)
            end: Last day of the range (inclusive)
            unlocked_only: Skip entries already claimed by a payroll record

        Returns:
            HoursSummary with totals and the ids of the entries used

        Raises:
            ValidationError: If start is after end
        """
        if start > end:
            raise ValidationError("Start date must not be after end date", field="period_start")

        entries = self.eligible_entries(worker_id, start, end, unlocked_only=unlocked_only)
        total_hours, average_rate, gross = summarize(entries)

        return HoursSummary(
            worker_id=worker_id,
            period_start=start,
            period_end=end,
            total_hours=total_hours,
            average_rate=average_rate,
            gross_amount=gross,
            entry_ids=tuple(e.working_hour_entry_id for e in entries),
        )

    def eligible_entries(
        self,
        worker_id: UUID,
        start: date,
        end: date,
        *,
        unlocked_only: bool = False,
    ) -> list[WorkingHourEntry]:
        """Approved entries in range, ordered by date."""
        query = select(WorkingHourEntry).where(
            WorkingHourEntry.worker_id == worker_id,
            WorkingHourEntry.work_date >= start,
            WorkingHourEntry.work_date <= end,
            WorkingHourEntry.status == WorkingHourStatus.APPROVED.value,
        )
        if unlocked_only:
            query = query.where(WorkingHourEntry.payroll_record_id.is_(None))
        query = query.order_by(WorkingHourEntry.work_date)
        return list(self.db.execute(query).scalars().all())
