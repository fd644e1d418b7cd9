"""Tests for domain events and the emitter."""

import json
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_ledger.events import (
    EventCategory,
    EventEmitter,
    EventMetadata,
    LedgerEntryPosted,
    PaymentRejected,
    PayrollPaid,
)

NOW = datetime(2024, 2, 1, 9, 30, tzinfo=timezone.utc)


def _paid_event(**overrides):
    values = dict(
        metadata=EventMetadata.create(timestamp=NOW),
        payroll_record_id=uuid4(),
        worker_id=uuid4(),
        bank_account_id=uuid4(),
        ledger_entry_id=uuid4(),
        amount=Decimal("600.00"),
        period_start=date(2024, 1, 1),
        period_end=date(2024, 1, 31),
        balance_after=Decimal("400.00"),
    )
    values.update(overrides)
    return PayrollPaid(**values)


def _rejected_event():
    return PaymentRejected(
        metadata=EventMetadata.create(timestamp=NOW),
        payroll_record_id=uuid4(),
        bank_account_id=uuid4(),
        reason_code="INSUFFICIENT_FUNDS",
        detail="not enough",
    )


class TestEventTypes:
    def test_to_dict(self):
        event = _paid_event()

        data = event.to_dict()

        assert data["event_type"] == "PayrollPaid"
        assert data["category"] == "payment"
        assert data["amount"] == "600.00"
        assert data["period_start"] == "2024-01-01"
        assert data["metadata"]["timestamp"] == "2024-02-01T09:30:00+00:00"
        assert data["payroll_record_id"] == str(event.payroll_record_id)

    def test_to_json(self):
        event = _paid_event()
        assert json.loads(event.to_json())["balance_after"] == "400.00"

    def test_correlation_defaults_to_new_id(self):
        first = EventMetadata.create()
        second = EventMetadata.create()
        assert first.correlation_id != second.correlation_id


class TestEmitter:
    def test_type_routing(self):
        emitter = EventEmitter()
        paid, posted = [], []
        emitter.on(PayrollPaid, paid.append)
        emitter.on(LedgerEntryPosted, posted.append)

        emitter.emit(_paid_event())

        assert len(paid) == 1
        assert posted == []

    def test_category_routing(self):
        emitter = EventEmitter()
        payments = []
        emitter.on_category(EventCategory.PAYMENT, payments.append)

        emitter.emit(_paid_event())
        emitter.emit(_rejected_event())

        assert [e.event_type for e in payments] == ["PayrollPaid", "PaymentRejected"]

    def test_failing_handler_isolated(self):
        emitter = EventEmitter()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        emitter.on_all(broken)
        emitter.on_all(received.append)

        errors = emitter.emit(_paid_event())

        assert len(received) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)

    def test_off(self):
        emitter = EventEmitter()
        received = []
        handler = received.append
        emitter.on_all(handler)
        emitter.off(handler)

        emitter.emit(_paid_event())

        assert received == []


class TestBatch:
    def test_events_held_until_exit(self):
        emitter = EventEmitter()
        received = []
        emitter.on_all(received.append)

        with emitter.batch() as batch:
            batch.add(_paid_event())
            batch.add(_rejected_event())
            assert received == []

        assert len(received) == 2

    def test_discarded_on_error(self):
        emitter = EventEmitter()
        received = []
        emitter.on_all(received.append)

        with pytest.raises(ValueError):
            with emitter.batch() as batch:
                batch.add(_paid_event())
                raise ValueError("rolled back")

        assert received == []
        emitter.emit(_paid_event())
        assert len(received) == 1

    def test_handler_errors_collected(self):
        emitter = EventEmitter()

        def broken(event):
            raise RuntimeError("boom")

        emitter.on(PayrollPaid, broken)

        with emitter.batch() as batch:
            batch.add(_paid_event())
            batch.add(_rejected_event())

        assert len(batch.errors) == 1

    def test_batches_are_per_thread(self):
        emitter = EventEmitter()
        received = []
        emitter.on_all(received.append)
        inside = threading.Event()
        release = threading.Event()

        def batching_thread():
            with emitter.batch() as batch:
                batch.add(_paid_event())
                inside.set()
                release.wait(timeout=5)

        worker = threading.Thread(target=batching_thread)
        worker.start()
        inside.wait(timeout=5)

        emitter.emit(_rejected_event())
        assert [e.event_type for e in received] == ["PaymentRejected"]

        release.set()
        worker.join(timeout=5)
        assert [e.event_type for e in received] == ["PaymentRejected", "PayrollPaid"]
