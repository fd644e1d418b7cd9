"""Pytest fixtures for payroll ledger tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from payroll_ledger.clock import FixedClock
from payroll_ledger.config import PaymentPolicy, Settings
from payroll_ledger.database import create_schema, get_engine, make_session_factory
from payroll_ledger.events import DomainEvent, EventEmitter
from payroll_ledger.models import LedgerEntry, PayrollRecord
from payroll_ledger.services.ledger_service import LedgerService
from payroll_ledger.services.payment_orchestrator import PaymentOrchestrator
from payroll_ledger.services.payroll_service import PayrollService
from payroll_ledger.services.working_hours import WorkingHoursService

NOW = datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc)
PERIOD_START = date(2024, 1, 1)
PERIOD_END = date(2024, 1, 31)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite database per test.

    A file (not :memory:) gives every session its own connection, so the
    concurrency tests see real transaction isolation.
    """
    engine = get_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return make_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Generator[Session, None, None]:
    """Session for service-level tests. Rolled back at teardown."""
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def captured_events(emitter) -> list[DomainEvent]:
    """Every event the emitter dispatches, in order."""
    events: list[DomainEvent] = []
    emitter.on_all(events.append)
    return events


@pytest.fixture
def orchestrator(session_factory, emitter, clock) -> PaymentOrchestrator:
    return PaymentOrchestrator(
        session_factory,
        emitter=emitter,
        clock=clock,
        policy=PaymentPolicy(max_attempts=5, backoff_ms=0),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        currency="USD",
        payment_max_attempts=5,
        payment_retry_backoff_ms=0,
    )


@dataclass
class LedgerTestData:
    """Builds committed accounts, hours and payroll records."""

    session_factory: sessionmaker[Session]
    clock: FixedClock
    worker_id: UUID = field(default_factory=uuid4)

    def create_account(
        self,
        opening_balance: str = "1000",
        name: str = "Operating",
        *,
        is_primary: bool = False,
    ) -> UUID:
        with self.session_factory() as session:
            account = LedgerService(session, clock=self.clock).open_account(
                name=name, opening_balance=Decimal(opening_balance), is_primary=is_primary
            )
            session.commit()
            return account.bank_account_id

    def deposit(self, account_id: UUID, amount: str, category: str = "funding") -> None:
        with self.session_factory() as session:
            LedgerService(session, clock=self.clock).record_deposit(
                bank_account_id=account_id, amount=Decimal(amount), category=category
            )
            session.commit()

    def record_hours(
        self,
        hours: str,
        rate: str,
        work_date: date = PERIOD_START,
        *,
        status: str = "approved",
        worker_id: UUID | None = None,
    ) -> UUID:
        with self.session_factory() as session:
            entry = WorkingHoursService(session).record_entry(
                worker_id=worker_id or self.worker_id,
                work_date=work_date,
                total_hours=Decimal(hours),
                hourly_rate=Decimal(rate),
                status=status,
            )
            session.commit()
            return entry.working_hour_entry_id

    def create_approved_payroll(
        self,
        net_pay: str = "600",
        *,
        worker_id: UUID | None = None,
        period_start: date = PERIOD_START,
        period_end: date = PERIOD_END,
    ) -> UUID:
        """Approved record paying ``net_pay`` (1 hour at that rate).

        Each call uses a fresh worker unless one is given, so periods never
        overlap.
        """
        with self.session_factory() as session:
            service = PayrollService(session, clock=self.clock)
            record = service.create_payroll_from_values(
                worker_id or uuid4(),
                period_start,
                period_end,
                total_hours=Decimal("1"),
                hourly_rate=Decimal(net_pay),
            )
            service.approve(record.payroll_record_id)
            session.commit()
            return record.payroll_record_id

    def balance(self, account_id: UUID) -> Decimal:
        with self.session_factory() as session:
            return LedgerService(session).get_balance(account_id)

    def ledger_entries(self, account_id: UUID) -> list[LedgerEntry]:
        with self.session_factory() as session:
            return LedgerService(session).list_entries(account_id)

    def entries_for_payroll(self, payroll_record_id: UUID) -> list[LedgerEntry]:
        with self.session_factory() as session:
            return list(
                session.execute(
                    select(LedgerEntry).where(LedgerEntry.payroll_record_id == payroll_record_id)
                ).scalars()
            )

    def payroll(self, payroll_record_id: UUID) -> PayrollRecord:
        with self.session_factory() as session:
            return session.get(PayrollRecord, payroll_record_id)


@pytest.fixture
def test_data(session_factory, clock) -> LedgerTestData:
    return LedgerTestData(session_factory=session_factory, clock=clock)
