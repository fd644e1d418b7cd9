"""Payroll record model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_ledger.models.base import Base, UpdatedAtMixin


class PayrollRecord(Base, UpdatedAtMixin):
    """Computed pay for one worker over one pay period."""

    __tablename__ = "payroll_record"

    payroll_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    worker_id: Mapped[UUID] = mapped_column(nullable=False)
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    bank_account_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("bank_account.bank_account_id"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint("period_start <= period_end", name="payroll_record_period_check"),
        CheckConstraint("total_hours >= 0", name="payroll_record_hours_check"),
        CheckConstraint("hourly_rate >= 0", name="payroll_record_rate_check"),
        CheckConstraint("deductions >= 0", name="payroll_record_deductions_check"),
        CheckConstraint("net_pay >= 0", name="payroll_record_net_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'void')",
            name="payroll_record_status_check",
        ),
        CheckConstraint(
            "status <> 'paid' OR bank_account_id IS NOT NULL",
            name="payroll_record_paid_account_check",
        ),
        Index("payroll_record_by_worker_period", "worker_id", "period_start", "period_end"),
    )


class PayrollWorkerLock(Base):
    """One row per worker, rewritten by every payroll creation for that worker.

    Writing the row holds a lock until the creating transaction ends, so
    creations for the same worker run one at a time and each overlap check
    sees the records committed before it.
    """

    __tablename__ = "payroll_worker_lock"

    worker_id: Mapped[UUID] = mapped_column(primary_key=True)
    generation: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
