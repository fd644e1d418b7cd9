"""Working-hour entry model."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column

from payroll_ledger.models.base import Base, UpdatedAtMixin


class WorkingHourEntry(Base, UpdatedAtMixin):
    """A single time record for a worker on a client project.

    Entries locked into a payroll record (``payroll_record_id`` set) can no
    longer be corrected; they become immutable once that record is paid.
    """

    __tablename__ = "working_hour_entry"

    working_hour_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    worker_id: Mapped[UUID] = mapped_column(nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(nullable=True)
    project_id: Mapped[UUID | None] = mapped_column(nullable=True)
    work_date: Mapped[date] = mapped_column(nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    payroll_record_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id"),
        nullable=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("total_hours >= 0", name="working_hour_entry_hours_check"),
        CheckConstraint("hourly_rate >= 0", name="working_hour_entry_rate_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'paid')",
            name="working_hour_entry_status_check",
        ),
        Index("working_hour_entry_by_worker_date", "worker_id", "work_date"),
    )

    @property
    def amount(self) -> Decimal:
        """Hours multiplied by rate for this entry."""
        return self.total_hours * self.hourly_rate

    @property
    def is_locked(self) -> bool:
        """Whether a payroll record has claimed this entry."""
        return self.payroll_record_id is not None
