"""Payroll record lifecycle: creation, pending edits, approval, voiding."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payroll_ledger.clock import Clock, SystemClock
from payroll_ledger.errors import InvalidStateTransition, NotFoundError, ValidationError
from payroll_ledger.events import (
    EventEmitter,
    EventMetadata,
    PayrollApproved,
    PayrollCreated,
    PayrollVoided,
)
from payroll_ledger.database import upsert_insert
from payroll_ledger.models import PayrollRecord, PayrollWorkerLock
from payroll_ledger.services.aggregation import WorkingHoursAggregator
from payroll_ledger.services.state_machine import PayrollStateMachine, PayrollStatus
from payroll_ledger.services.working_hours import WorkingHoursService

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PayBreakdown:
    """Gross and net pay for a set of payroll inputs."""

    total_hours: Decimal
    hourly_rate: Decimal
    gross_pay: Decimal
    deductions: Decimal
    net_pay: Decimal


def compute_pay(total_hours: Decimal, hourly_rate: Decimal, deductions: Decimal) -> PayBreakdown:
    """gross = hours x rate, net = gross - deductions.

    Raises:
        ValidationError: negative inputs, or deductions larger than gross
    """
    total_hours = Decimal(str(total_hours))
    hourly_rate = Decimal(str(hourly_rate))
    deductions = Decimal(str(deductions))

    if total_hours < 0:
        raise ValidationError("Hours cannot be negative", field="total_hours")
    if hourly_rate < 0:
        raise ValidationError("Hourly rate cannot be negative", field="hourly_rate")
    if deductions < 0:
        raise ValidationError("Deductions cannot be negative", field="deductions")

    gross = (total_hours * hourly_rate).quantize(CENT, rounding=ROUND_HALF_UP)
    deductions = deductions.quantize(CENT, rounding=ROUND_HALF_UP)
    if deductions > gross:
        raise ValidationError(
            f"Deductions {deductions} exceed gross pay {gross}", field="deductions"
        )

    return PayBreakdown(
        total_hours=total_hours,
        hourly_rate=hourly_rate,
        gross_pay=gross,
        deductions=deductions,
        net_pay=gross - deductions,
    )


class PayrollService:
    """Service owning the payroll record state machine.

    - Records are created pending from aggregated approved hours.
    - Amounts change only while pending; net pay is recomputed each time.
    - Every status write is a compare-and-set on (id, expected status).
    - The paid transition belongs to the PaymentOrchestrator.

    The service never commits. Wrap calls in ``emitter.batch()`` and commit
    inside it so events only go out for committed changes.
    """

    def __init__(
        self,
        db: Session,
        clock: Clock | None = None,
        emitter: EventEmitter | None = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.emitter = emitter or EventEmitter()
        self.aggregator = WorkingHoursAggregator(db)
        self.working_hours = WorkingHoursService(db)

    def get(self, payroll_record_id: UUID) -> PayrollRecord:
        """Load a payroll record or raise NotFoundError."""
        record = self.db.get(PayrollRecord, payroll_record_id, populate_existing=True)
        if record is None:
            raise NotFoundError("PayrollRecord", payroll_record_id)
        return record

    def list_records(
        self,
        *,
        worker_id: UUID | None = None,
        status: str | None = None,
    ) -> list[PayrollRecord]:
        """Payroll records, newest period first."""
        query = select(PayrollRecord)
        if worker_id is not None:
            query = query.where(PayrollRecord.worker_id == worker_id)
        if status is not None:
            query = query.where(PayrollRecord.status == status)
        query = query.order_by(PayrollRecord.period_start.desc())
        return list(self.db.execute(query).scalars().all())

    def create_payroll(
        self,
        worker_id: UUID,
        period_start: date,
        period_end: date,
        deductions: Decimal = Decimal("0"),
    ) -> PayrollRecord:
        """Create a pending record from the worker's approved hours.

        The approved, unclaimed entries in the period are locked to the new
        record so they cannot be corrected or counted twice.
        """
        summary = self.aggregator.aggregate(worker_id, period_start, period_end, unlocked_only=True)
        breakdown = compute_pay(summary.total_hours, summary.average_rate, deductions)
        self._claim_worker(worker_id)

        record = self._insert(worker_id, period_start, period_end, breakdown)
        locked = self.working_hours.lock_for_payroll(summary.entry_ids, record.payroll_record_id)

        self._emit_created(record, locked)
        return record

    def create_payroll_from_values(
        self,
        worker_id: UUID,
        period_start: date,
        period_end: date,
        *,
        total_hours: Decimal,
        hourly_rate: Decimal,
        deductions: Decimal = Decimal("0"),
    ) -> PayrollRecord:
        """Create a pending record from hand-entered hours and rate."""
        if period_start > period_end:
            raise ValidationError("Start date must not be after end date", field="period_start")
        breakdown = compute_pay(total_hours, hourly_rate, deductions)
        self._claim_worker(worker_id)

        record = self._insert(worker_id, period_start, period_end, breakdown)
        self._emit_created(record, 0)
        return record

    def update_pending(
        self,
        payroll_record_id: UUID,
        *,
        total_hours: Decimal | None = None,
        hourly_rate: Decimal | None = None,
        deductions: Decimal | None = None,
    ) -> PayrollRecord:
        """Change hours, rate or deductions of a pending record."""
        record = self.get(payroll_record_id)
        if not PayrollStateMachine.can_modify_amounts(record.status):
            raise InvalidStateTransition(
                record.status, record.status, "amounts are frozen once approved"
            )

        breakdown = compute_pay(
            record.total_hours if total_hours is None else total_hours,
            record.hourly_rate if hourly_rate is None else hourly_rate,
            record.deductions if deductions is None else deductions,
        )
        self._compare_and_set(
            payroll_record_id,
            PayrollStatus.PENDING,
            PayrollStatus.PENDING,
            total_hours=breakdown.total_hours,
            hourly_rate=breakdown.hourly_rate,
            gross_pay=breakdown.gross_pay,
            deductions=breakdown.deductions,
            net_pay=breakdown.net_pay,
        )
        return self.get(payroll_record_id)

    def approve(self, payroll_record_id: UUID) -> PayrollRecord:
        """pending → approved. Freezes the amounts."""
        self._compare_and_set(
            payroll_record_id,
            PayrollStatus.PENDING,
            PayrollStatus.APPROVED,
            approved_at=self.clock.now(),
        )
        record = self.get(payroll_record_id)
        self.emitter.emit(
            PayrollApproved(
                metadata=EventMetadata.create(timestamp=self.clock.now()),
                payroll_record_id=record.payroll_record_id,
                worker_id=record.worker_id,
                net_pay=record.net_pay,
            )
        )
        return record

    def void(self, payroll_record_id: UUID) -> PayrollRecord:
        """pending|approved → void. Releases the locked working hours."""
        record = self.get(payroll_record_id)
        previous = record.status
        if previous not in (PayrollStatus.PENDING.value, PayrollStatus.APPROVED.value):
            raise InvalidStateTransition(previous, PayrollStatus.VOID.value)

        self._compare_and_set(payroll_record_id, PayrollStatus(previous), PayrollStatus.VOID)
        released = self.working_hours.release_for_payroll(payroll_record_id)

        record = self.get(payroll_record_id)
        self.emitter.emit(
            PayrollVoided(
                metadata=EventMetadata.create(timestamp=self.clock.now()),
                payroll_record_id=record.payroll_record_id,
                worker_id=record.worker_id,
                previous_status=previous,
                released_entry_count=released,
            )
        )
        return record

    def mark_paid(self, payroll_record_id: UUID, bank_account_id: UUID) -> None:
        """approved → paid, recording the paying account.

        Only the PaymentOrchestrator calls this, inside its transaction.
        """
        self._compare_and_set(
            payroll_record_id,
            PayrollStatus.APPROVED,
            PayrollStatus.PAID,
            bank_account_id=bank_account_id,
            paid_at=self.clock.now(),
        )

    def find_overlapping(
        self,
        worker_id: UUID,
        period_start: date,
        period_end: date,
    ) -> list[PayrollRecord]:
        """Non-void records of the worker whose period intersects the given one."""
        blocking = [s.value for s in PayrollStateMachine.BLOCKS_PERIOD]
        return list(
            self.db.execute(
                select(PayrollRecord).where(
                    PayrollRecord.worker_id == worker_id,
                    PayrollRecord.status.in_(blocking),
                    PayrollRecord.period_start <= period_end,
                    PayrollRecord.period_end >= period_start,
                )
            )
            .scalars()
            .all()
        )

    def _claim_worker(self, worker_id: UUID) -> None:
        """Serialize payroll creation for one worker until the transaction ends.

        The upsert row-locks the worker on PostgreSQL and takes the database
        write lock on SQLite. A second creator blocks here until the first
        commits or rolls back, then its overlap check sees the outcome.
        """
        stmt = upsert_insert(self.db, PayrollWorkerLock.__table__).values(
            worker_id=worker_id, generation=1
        )
        self.db.execute(
            stmt.on_conflict_do_update(
                index_elements=["worker_id"],
                set_={"generation": PayrollWorkerLock.__table__.c.generation + 1},
            )
        )

    def _insert(
        self,
        worker_id: UUID,
        period_start: date,
        period_end: date,
        breakdown: PayBreakdown,
    ) -> PayrollRecord:
        overlapping = self.find_overlapping(worker_id, period_start, period_end)
        if overlapping:
            other = overlapping[0]
            raise ValidationError(
                f"Period overlaps payroll {other.payroll_record_id} "
                f"({other.period_start} to {other.period_end})",
                field="period_start",
            )

        record = PayrollRecord(
            worker_id=worker_id,
            period_start=period_start,
            period_end=period_end,
            total_hours=breakdown.total_hours,
            hourly_rate=breakdown.hourly_rate,
            gross_pay=breakdown.gross_pay,
            deductions=breakdown.deductions,
            net_pay=breakdown.net_pay,
            status=PayrollStatus.PENDING.value,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def _emit_created(self, record: PayrollRecord, locked: int) -> None:
        self.emitter.emit(
            PayrollCreated(
                metadata=EventMetadata.create(timestamp=self.clock.now()),
                payroll_record_id=record.payroll_record_id,
                worker_id=record.worker_id,
                period_start=record.period_start,
                period_end=record.period_end,
                net_pay=record.net_pay,
                locked_entry_count=locked,
            )
        )

    def _compare_and_set(
        self,
        payroll_record_id: UUID,
        expected: PayrollStatus,
        target: PayrollStatus,
        **values: Any,
    ) -> None:
        """Write ``target`` only if the row is still at ``expected``.

        A caller that loses a race sees the winner's status and gets
        InvalidStateTransition.
        """
        if expected != target:
            PayrollStateMachine.validate_transition(expected, target)

        result = self.db.execute(
            update(PayrollRecord)
            .where(
                PayrollRecord.payroll_record_id == payroll_record_id,
                PayrollRecord.status == expected.value,
            )
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        current = self.db.execute(
            select(PayrollRecord.status).where(PayrollRecord.payroll_record_id == payroll_record_id)
        ).scalar_one_or_none()
        if current is None:
            raise NotFoundError("PayrollRecord", payroll_record_id)
        raise InvalidStateTransition(current, target.value)
