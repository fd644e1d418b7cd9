"""Property-based tests for ledger and aggregation invariants.

Hypothesis generates random sequences of deposits and salary payments and
checks that the derived balance always matches a simple model and never
goes below zero, whatever the order.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_ledger.clock import FixedClock
from payroll_ledger.config import PaymentPolicy
from payroll_ledger.database import create_schema, get_engine, make_session_factory
from payroll_ledger.errors import InsufficientFunds
from payroll_ledger.services.aggregation import RATE_PLACES, summarize
from payroll_ledger.services.ledger_service import LedgerService
from payroll_ledger.services.payment_orchestrator import PaymentOrchestrator
from payroll_ledger.services.payroll_service import PayrollService
from payroll_ledger.services.reconciliation import ReconciliationService

CLOCK = FixedClock(datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc))

money = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("1000"), places=2)
operations = st.lists(st.tuples(st.sampled_from(["deposit", "pay"]), money), max_size=12)

hours = st.decimals(min_value=Decimal("0"), max_value=Decimal("24"), places=2)
rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("250"), places=2)
entries = st.lists(st.tuples(hours, rates), max_size=20)


class TestLedgerProperties:
    @settings(max_examples=40, deadline=None)
    @given(opening=st.decimals(min_value=Decimal("0"), max_value=Decimal("2000"), places=2), ops=operations)
    def test_balance_matches_model(self, opening, ops):
        engine = get_engine("sqlite://")
        create_schema(engine)
        factory = make_session_factory(engine)
        orchestrator = PaymentOrchestrator(
            factory, clock=CLOCK, policy=PaymentPolicy(max_attempts=1, backoff_ms=0)
        )
        try:
            with factory() as session:
                account_id = LedgerService(session, clock=CLOCK).open_account(
                    name="Operating", opening_balance=opening
                ).bank_account_id
                session.commit()

            expected = opening
            for kind, amount in ops:
                if kind == "deposit":
                    with factory() as session:
                        LedgerService(session, clock=CLOCK).record_deposit(
                            bank_account_id=account_id, amount=amount, category="funding"
                        )
                        session.commit()
                    expected += amount
                    continue

                with factory() as session:
                    service = PayrollService(session, clock=CLOCK)
                    record = service.create_payroll_from_values(
                        uuid4(),
                        date(2024, 1, 1),
                        date(2024, 1, 31),
                        total_hours=Decimal("1"),
                        hourly_rate=amount,
                    )
                    service.approve(record.payroll_record_id)
                    session.commit()

                try:
                    result = orchestrator.pay(record.payroll_record_id, account_id)
                except InsufficientFunds:
                    assert amount > expected
                else:
                    assert amount <= expected
                    expected -= amount
                    assert result.balance_after == expected

                with factory() as session:
                    assert LedgerService(session).get_balance(account_id) == expected
                assert expected >= 0

            with factory() as session:
                assert LedgerService(session).verify_account(account_id)
                assert ReconciliationService(session, clock=CLOCK).run().ok
        finally:
            engine.dispose()


class TestAggregationProperties:
    @given(entries)
    def test_totals(self, pairs):
        rows = [SimpleNamespace(total_hours=h, hourly_rate=r) for h, r in pairs]

        total, average, gross = summarize(rows)

        if sum((h for h, _ in pairs), Decimal("0")) == 0:
            assert (total, average, gross) == (Decimal("0"), Decimal("0"), Decimal("0"))
            return
        assert total == sum(h for h, _ in pairs)
        assert gross == sum(h * r for h, r in pairs)

    @given(entries)
    def test_average_between_extreme_rates(self, pairs):
        worked = [(h, r) for h, r in pairs if h > 0]
        rows = [SimpleNamespace(total_hours=h, hourly_rate=r) for h, r in pairs]

        _, average, _ = summarize(rows)

        if not worked:
            assert average == Decimal("0")
            return
        assert min(r for _, r in worked) - RATE_PLACES <= average
        assert average <= max(r for _, r in worked) + RATE_PLACES

    @given(entries)
    def test_order_independent(self, pairs):
        forward = summarize(SimpleNamespace(total_hours=h, hourly_rate=r) for h, r in pairs)
        backward = summarize(
            SimpleNamespace(total_hours=h, hourly_rate=r) for h, r in reversed(pairs)
        )
        assert forward == backward
