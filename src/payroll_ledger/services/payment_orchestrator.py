"""Payment Orchestrator - Marks approved payroll records as paid.

Orchestrates a salary payment as one database transaction:
1. Load the payroll record and check it is approved
2. Compute the bank account balance (with its ledger version)
3. Refuse with InsufficientFunds when the balance does not cover net pay
4. Append the salary withdrawal (compare-and-set on the ledger version)
5. Compare-and-set the payroll record approved → paid
6. Flip the record's working-hour entries to paid
7. Commit, then publish events (the notification goes out from there)

A record with zero net pay skips steps 3 and 4: it is marked paid without
a ledger entry.

Losing a race on either compare-and-set rolls the whole attempt back.
Conflicts on the ledger version are retried from a fresh read; a record
that someone else already paid fails with InvalidStateTransition.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payroll_ledger.clock import Clock, SystemClock
from payroll_ledger.config import PaymentPolicy
from payroll_ledger.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidStateTransition,
    NotFoundError,
    PayrollLedgerError,
    PersistenceFailure,
)
from payroll_ledger.events import (
    EventEmitter,
    EventMetadata,
    LedgerEntryPosted,
    PaymentRejected,
    PayrollPaid,
)
from payroll_ledger.models import PayrollRecord
from payroll_ledger.services.ledger_service import LedgerService, to_money
from payroll_ledger.services.payroll_service import PayrollService
from payroll_ledger.services.state_machine import PayrollStateMachine, PayrollStatus
from payroll_ledger.services.working_hours import WorkingHoursService

logger = logging.getLogger(__name__)

SALARY_CATEGORY = "salary"

# SQLSTATEs meaning "lost a lock or serialization race, try again"
_RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
_RETRYABLE_MESSAGES = ("database is locked", "database is busy", "deadlock", "could not serialize")


@dataclass(frozen=True)
class PaymentResult:
    """Result of a committed salary payment."""

    payroll_record_id: UUID
    bank_account_id: UUID
    ledger_entry_id: UUID | None  # None when net pay was zero
    amount: Decimal
    balance_after: Decimal
    attempts: int
    notification_errors: int = 0

    @property
    def notified(self) -> bool:
        """Whether every post-commit handler (notification included) succeeded."""
        return self.notification_errors == 0


@dataclass(frozen=True)
class _CommittedPayment:
    record_worker_id: UUID
    period_start: date
    period_end: date
    ledger_entry_id: UUID | None
    amount: Decimal
    balance_after: Decimal
    ledger_version: int


class PaymentOrchestrator:
    """Payment orchestration service.

    Owns its transactions: each attempt opens a session from the factory,
    commits or rolls back, and closes it. Nothing about a payment is
    retained between calls.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        emitter: EventEmitter | None = None,
        clock: Clock | None = None,
        policy: PaymentPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.emitter = emitter or EventEmitter()
        self.clock = clock or SystemClock()
        self.policy = policy or PaymentPolicy()
        self._sleep = sleep

    def pay(
        self,
        payroll_record_id: UUID,
        bank_account_id: UUID | None = None,
        *,
        actor_id: UUID | None = None,
    ) -> PaymentResult:
        """Pay an approved payroll record from a bank account.

        Args:
            payroll_record_id: Record to pay (must be approved)
            bank_account_id: Account the net pay is withdrawn from; the
                primary house account when omitted
            actor_id: Optional user who initiated the payment

        Returns:
            PaymentResult describing the committed withdrawal

        Raises:
            NotFoundError: record or account does not exist
            InvalidStateTransition: record is not approved (already paid,
                still pending, or void)
            InsufficientFunds: balance does not cover net pay
            ConcurrencyConflict: still losing races after max_attempts
            PersistenceFailure: the store failed; nothing was committed
        """
        if bank_account_id is None:
            bank_account_id = self._primary_account_id()

        attempt = 0
        while True:
            attempt += 1
            try:
                committed = self._attempt(payroll_record_id, bank_account_id)
                break
            except ConcurrencyConflict as exc:
                if attempt >= self.policy.max_attempts:
                    logger.error(
                        "Payment of payroll %s gave up after %d conflicting attempts: %s",
                        payroll_record_id,
                        attempt,
                        exc,
                    )
                    raise
                logger.warning(
                    "Payment of payroll %s conflicted (attempt %d/%d): %s",
                    payroll_record_id,
                    attempt,
                    self.policy.max_attempts,
                    exc,
                )
                self._backoff(attempt)
            except (InsufficientFunds, InvalidStateTransition) as exc:
                self._publish_rejection(payroll_record_id, bank_account_id, exc, actor_id)
                raise

        logger.info(
            "Paid payroll %s: withdrew %s from account %s (balance now %s)",
            payroll_record_id,
            committed.amount,
            bank_account_id,
            committed.balance_after,
        )
        errors = self._publish_paid(payroll_record_id, bank_account_id, committed, actor_id)
        if errors:
            logger.warning(
                "Payroll %s is paid but %d post-payment handler(s) failed",
                payroll_record_id,
                len(errors),
            )

        return PaymentResult(
            payroll_record_id=payroll_record_id,
            bank_account_id=bank_account_id,
            ledger_entry_id=committed.ledger_entry_id,
            amount=committed.amount,
            balance_after=committed.balance_after,
            attempts=attempt,
            notification_errors=len(errors),
        )

    def _attempt(self, payroll_record_id: UUID, bank_account_id: UUID) -> _CommittedPayment:
        """Run one transactional attempt. Commits or rolls back, never both."""
        session = self.session_factory()
        try:
            committed = self._execute(session, payroll_record_id, bank_account_id)
            session.commit()
            return committed
        except PayrollLedgerError:
            session.rollback()
            raise
        except (IntegrityError, OperationalError) as exc:
            session.rollback()
            if isinstance(exc, IntegrityError) or _is_retryable(exc):
                raise ConcurrencyConflict("payroll_record", payroll_record_id, str(exc.orig)) from exc
            logger.error(
                "Store failure while paying payroll %s; transaction rolled back. "
                "Run reconciliation if the commit outcome is unknown.",
                payroll_record_id,
            )
            raise PersistenceFailure(f"Store failure while paying {payroll_record_id}") from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise PersistenceFailure(f"Store failure while paying {payroll_record_id}") from exc
        finally:
            session.close()

    def _execute(
        self,
        session: Session,
        payroll_record_id: UUID,
        bank_account_id: UUID,
    ) -> _CommittedPayment:
        ledger = LedgerService(session, clock=self.clock)
        payroll = PayrollService(session, clock=self.clock)
        working_hours = WorkingHoursService(session)

        record = session.execute(
            select(PayrollRecord)
            .where(PayrollRecord.payroll_record_id == payroll_record_id)
            .with_for_update()
        ).scalar_one_or_none()
        if record is None:
            raise NotFoundError("PayrollRecord", payroll_record_id)

        PayrollStateMachine.validate_transition(record.status, PayrollStatus.PAID)

        amount = to_money(record.net_pay)
        snapshot = ledger.get_balance_snapshot(bank_account_id, for_update=True)

        if amount == 0:
            payroll.mark_paid(record.payroll_record_id, bank_account_id)
            working_hours.mark_paid_for_payroll(record.payroll_record_id)
            return _CommittedPayment(
                record_worker_id=record.worker_id,
                period_start=record.period_start,
                period_end=record.period_end,
                ledger_entry_id=None,
                amount=amount,
                balance_after=snapshot.balance,
                ledger_version=snapshot.ledger_version,
            )

        if not snapshot.covers(amount):
            raise InsufficientFunds(bank_account_id, amount, snapshot.balance)

        post = ledger.append_entry(
            bank_account_id=bank_account_id,
            expected_version=snapshot.ledger_version,
            entry_type="withdrawal",
            amount=amount,
            category=SALARY_CATEGORY,
            description=(
                f"Salary payment for worker {record.worker_id} "
                f"({record.period_start} - {record.period_end})"
            ),
            entry_date=self.clock.today(),
            payroll_record_id=record.payroll_record_id,
            worker_id=record.worker_id,
        )
        payroll.mark_paid(record.payroll_record_id, bank_account_id)
        working_hours.mark_paid_for_payroll(record.payroll_record_id)

        return _CommittedPayment(
            record_worker_id=record.worker_id,
            period_start=record.period_start,
            period_end=record.period_end,
            ledger_entry_id=post.entry_id,
            amount=amount,
            balance_after=snapshot.balance - amount,
            ledger_version=post.ledger_version,
        )

    def _primary_account_id(self) -> UUID:
        with self.session_factory() as session:
            return LedgerService(session).get_primary_account().bank_account_id

    def _backoff(self, attempt: int) -> None:
        if self.policy.backoff_ms <= 0:
            return
        base = self.policy.backoff_ms / 1000.0
        self._sleep(base * attempt * random.uniform(1.0, 2.0))

    def _publish_paid(
        self,
        payroll_record_id: UUID,
        bank_account_id: UUID,
        committed: _CommittedPayment,
        actor_id: UUID | None,
    ) -> list[Exception]:
        metadata = EventMetadata.create(actor_id=actor_id, timestamp=self.clock.now())
        with self.emitter.batch() as batch:
            if committed.ledger_entry_id is not None:
                batch.add(
                    LedgerEntryPosted(
                        metadata=metadata,
                        ledger_entry_id=committed.ledger_entry_id,
                        bank_account_id=bank_account_id,
                        entry_type="withdrawal",
                        amount=committed.amount,
                        category_code=SALARY_CATEGORY,
                        ledger_version=committed.ledger_version,
                    )
                )
            batch.add(
                PayrollPaid(
                    metadata=EventMetadata.create(
                        correlation_id=metadata.correlation_id,
                        actor_id=actor_id,
                        timestamp=self.clock.now(),
                    ),
                    payroll_record_id=payroll_record_id,
                    worker_id=committed.record_worker_id,
                    bank_account_id=bank_account_id,
                    ledger_entry_id=committed.ledger_entry_id,
                    amount=committed.amount,
                    period_start=committed.period_start,
                    period_end=committed.period_end,
                    balance_after=committed.balance_after,
                )
            )
        return batch.errors

    def _publish_rejection(
        self,
        payroll_record_id: UUID,
        bank_account_id: UUID,
        exc: PayrollLedgerError,
        actor_id: UUID | None,
    ) -> None:
        self.emitter.emit(
            PaymentRejected(
                metadata=EventMetadata.create(actor_id=actor_id, timestamp=self.clock.now()),
                payroll_record_id=payroll_record_id,
                bank_account_id=bank_account_id,
                reason_code=exc.code,
                detail=str(exc),
            )
        )


def _is_retryable(exc: OperationalError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    message = str(orig).lower()
    return any(fragment in message for fragment in _RETRYABLE_MESSAGES)
