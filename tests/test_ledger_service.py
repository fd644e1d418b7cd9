"""Tests for the append-only ledger and balance calculation."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from payroll_ledger.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    NotFoundError,
    ValidationError,
)
from payroll_ledger.models import AppendOnlyViolation, BankAccount, LedgerEntry
from payroll_ledger.services.ledger_service import LedgerService


class TestBalance:
    """Balance is opening balance plus deposits minus withdrawals."""

    def test_opening_balance_only(self, db, test_data):
        account_id = test_data.create_account("1000")

        snapshot = LedgerService(db).get_balance_snapshot(account_id)

        assert snapshot.balance == Decimal("1000")
        assert snapshot.total_deposits == Decimal("0")
        assert snapshot.ledger_version == 0

    def test_balance_from_entries(self, db, test_data):
        account_id = test_data.create_account("1000")
        ledger = LedgerService(db, clock=test_data.clock)
        ledger.record_deposit(bank_account_id=account_id, amount=Decimal("250.50"), category="funding")
        ledger.record_withdrawal(bank_account_id=account_id, amount=Decimal("100.25"), category="fees")
        db.commit()

        snapshot = ledger.get_balance_snapshot(account_id)

        assert snapshot.total_deposits == Decimal("250.50")
        assert snapshot.total_withdrawals == Decimal("100.25")
        assert snapshot.balance == Decimal("1150.25")
        assert snapshot.ledger_version == 2
        assert ledger.verify_account(account_id) is True

    def test_missing_account(self, db):
        with pytest.raises(NotFoundError):
            LedgerService(db).get_balance(uuid4())


class TestAppend:
    """Posting entries."""

    def test_withdrawal_cannot_overdraw(self, db, test_data):
        account_id = test_data.create_account("100")

        with pytest.raises(InsufficientFunds) as exc_info:
            LedgerService(db).record_withdrawal(
                bank_account_id=account_id, amount=Decimal("100.01"), category="fees"
            )

        assert exc_info.value.shortfall == Decimal("0.01")
        db.rollback()
        assert test_data.ledger_entries(account_id) == []

    def test_withdrawal_of_entire_balance(self, db, test_data):
        account_id = test_data.create_account("100")
        LedgerService(db).record_withdrawal(
            bank_account_id=account_id, amount=Decimal("100"), category="fees"
        )
        db.commit()

        assert test_data.balance(account_id) == Decimal("0")

    def test_amount_must_be_positive(self, db, test_data):
        account_id = test_data.create_account("100")

        with pytest.raises(ValidationError):
            LedgerService(db).record_deposit(
                bank_account_id=account_id, amount=Decimal("0"), category="funding"
            )

    def test_stale_version_conflicts(self, db, test_data):
        account_id = test_data.create_account("100")
        test_data.deposit(account_id, "50")

        with pytest.raises(ConcurrencyConflict):
            LedgerService(db).append_entry(
                bank_account_id=account_id,
                expected_version=0,
                entry_type="deposit",
                amount=Decimal("10"),
                category="funding",
            )

    def test_idempotent_deposit(self, db, test_data):
        account_id = test_data.create_account("0")
        ledger = LedgerService(db, clock=test_data.clock)

        first = ledger.record_deposit(
            bank_account_id=account_id,
            amount=Decimal("75"),
            category="funding",
            idempotency_key="funding-2024-01",
        )
        db.commit()
        second = ledger.record_deposit(
            bank_account_id=account_id,
            amount=Decimal("75"),
            category="funding",
            idempotency_key="funding-2024-01",
        )
        db.commit()

        assert first.is_new is True
        assert second.is_new is False
        assert second.entry_id == first.entry_id
        assert test_data.balance(account_id) == Decimal("75")

    def test_append_with_posted_key_returns_existing(self, db, test_data):
        """A key that is already posted short-circuits before the version bump."""
        account_id = test_data.create_account("0")
        ledger = LedgerService(db, clock=test_data.clock)
        first = ledger.record_deposit(
            bank_account_id=account_id,
            amount=Decimal("30"),
            category="funding",
            idempotency_key="topup-7",
        )
        db.commit()

        again = ledger.append_entry(
            bank_account_id=account_id,
            expected_version=first.ledger_version,
            entry_type="deposit",
            amount=Decimal("30"),
            category="funding",
            idempotency_key="topup-7",
        )
        db.commit()

        assert again.is_new is False
        assert again.entry_id == first.entry_id
        assert again.ledger_version == first.ledger_version == 1
        assert len(test_data.ledger_entries(account_id)) == 1

    def test_entry_defaults_to_clock_date(self, db, test_data):
        account_id = test_data.create_account("0")
        LedgerService(db, clock=test_data.clock).record_deposit(
            bank_account_id=account_id, amount=Decimal("1"), category="funding"
        )
        db.commit()

        (entry,) = test_data.ledger_entries(account_id)
        assert entry.entry_date == date(2024, 2, 1)

    def test_list_entries_by_type(self, db, test_data):
        account_id = test_data.create_account("500")
        test_data.deposit(account_id, "20")
        ledger = LedgerService(db, clock=test_data.clock)
        ledger.record_withdrawal(bank_account_id=account_id, amount=Decimal("5"), category="fees")
        db.commit()

        withdrawals = ledger.list_entries(account_id, entry_type="withdrawal")

        assert [e.amount for e in withdrawals] == [Decimal("5")]
        assert withdrawals[0].signed_amount == Decimal("-5")


class TestAppendOnly:
    """Committed ledger state cannot be rewritten through the ORM."""

    def test_ledger_entry_update_refused(self, db, test_data):
        account_id = test_data.create_account("0")
        test_data.deposit(account_id, "10")

        entry = db.execute(
            select(LedgerEntry).where(LedgerEntry.bank_account_id == account_id)
        ).scalar_one()
        entry.amount = Decimal("1000")

        with pytest.raises(AppendOnlyViolation):
            db.flush()

    def test_ledger_entry_delete_refused(self, db, test_data):
        account_id = test_data.create_account("0")
        test_data.deposit(account_id, "10")

        entry = db.execute(
            select(LedgerEntry).where(LedgerEntry.bank_account_id == account_id)
        ).scalar_one()
        db.delete(entry)

        with pytest.raises(AppendOnlyViolation):
            db.flush()

    def test_opening_balance_is_immutable(self, db, test_data):
        account_id = test_data.create_account("100")

        account = db.get(BankAccount, account_id)
        account.opening_balance = Decimal("1000000")

        with pytest.raises(AppendOnlyViolation):
            db.flush()

    def test_account_name_can_change(self, db, test_data):
        account_id = test_data.create_account("100")

        account = db.get(BankAccount, account_id)
        account.name = "Payroll"
        db.flush()

        assert db.get(BankAccount, account_id).name == "Payroll"


class TestOpenAccount:
    def test_worker_account_needs_owner(self, db):
        with pytest.raises(ValidationError):
            LedgerService(db).open_account(name="Savings", opening_balance=Decimal("0"), ownership="worker")

    def test_opening_balance_rounded_to_cents(self, db):
        account = LedgerService(db).open_account(name="Ops", opening_balance=Decimal("10.005"))
        assert account.opening_balance == Decimal("10.01")


class TestPrimaryAccount:
    """The account payments fall back to when none is named."""

    def test_flagged_account_wins(self, db, test_data):
        test_data.create_account("100", name="Alpha")
        primary = test_data.create_account("100", name="Zeta", is_primary=True)

        assert LedgerService(db).get_primary_account().bank_account_id == primary

    def test_first_house_account_by_name_without_flag(self, db, test_data):
        test_data.create_account("100", name="Reserve")
        operating = test_data.create_account("100", name="Operating")

        assert LedgerService(db).get_primary_account().bank_account_id == operating

    def test_worker_accounts_are_ignored(self, db):
        LedgerService(db).open_account(
            name="Savings",
            opening_balance=Decimal("0"),
            is_primary=True,
            ownership="worker",
            owner_worker_id=uuid4(),
        )

        with pytest.raises(NotFoundError):
            LedgerService(db).get_primary_account()
