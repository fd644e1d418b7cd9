"""Tests for ledger reconciliation.

Inconsistencies are planted with direct SQL that bypasses the services,
the way a manual fix or a half-applied commit would.
"""

from decimal import Decimal

from sqlalchemy import update

from payroll_ledger.events import EventCategory, LedgerInconsistencyDetected
from payroll_ledger.models import LedgerEntry, PayrollRecord
from payroll_ledger.services.reconciliation import (
    AMOUNT_MISMATCH,
    LEDGER_VERSION_DRIFT,
    NEGATIVE_BALANCE,
    ORPHANED_WITHDRAWAL,
    PAID_WITHOUT_WITHDRAWAL,
    ReconciliationService,
)


def _insert_raw_entry(session_factory, clock, account_id, amount, *, payroll_record_id=None):
    """Insert a withdrawal without bumping the account's ledger version."""
    with session_factory() as session:
        session.add(
            LedgerEntry(
                bank_account_id=account_id,
                entry_type="withdrawal",
                amount=Decimal(amount),
                category="salary",
                entry_date=clock.today(),
                payroll_record_id=payroll_record_id,
            )
        )
        session.commit()


def _force_payroll(session_factory, payroll_id, **values):
    with session_factory() as session:
        session.execute(
            update(PayrollRecord)
            .where(PayrollRecord.payroll_record_id == payroll_id)
            .values(**values)
        )
        session.commit()


class TestCleanLedger:
    def test_no_findings_after_normal_activity(self, db, orchestrator, test_data, clock):
        account_id = test_data.create_account("1000")
        test_data.deposit(account_id, "250")
        orchestrator.pay(test_data.create_approved_payroll("600"), account_id)
        test_data.create_approved_payroll("100")

        report = ReconciliationService(db, clock=clock).run()

        assert report.ok
        assert report.accounts_checked == 1
        assert report.payrolls_checked == 2
        assert report.by_code == {}

    def test_zero_net_payment_needs_no_withdrawal(self, db, orchestrator, test_data, clock):
        account_id = test_data.create_account("1000")
        payroll_id = test_data.create_approved_payroll("0")
        orchestrator.pay(payroll_id, account_id)

        report = ReconciliationService(db, clock=clock).run()

        assert test_data.payroll(payroll_id).status == "paid"
        assert report.ok

    def test_empty_store(self, db, clock):
        report = ReconciliationService(db, clock=clock).run()

        assert report.ok
        assert report.to_dict()["findings"] == []


class TestFindings:
    def test_withdrawal_for_unpaid_record(self, db, session_factory, test_data, clock):
        account_id = test_data.create_account("1000")
        payroll_id = test_data.create_approved_payroll("600")
        _insert_raw_entry(session_factory, clock, account_id, "600", payroll_record_id=payroll_id)

        report = ReconciliationService(db, clock=clock).run()

        assert report.by_code == {ORPHANED_WITHDRAWAL: 1, LEDGER_VERSION_DRIFT: 1}
        orphan = next(f for f in report.findings if f.code == ORPHANED_WITHDRAWAL)
        assert orphan.payroll_record_id == payroll_id
        assert orphan.bank_account_id == account_id

    def test_paid_record_without_withdrawal(self, db, session_factory, test_data, clock):
        account_id = test_data.create_account("1000")
        payroll_id = test_data.create_approved_payroll("600")
        _force_payroll(session_factory, payroll_id, status="paid", bank_account_id=account_id)

        report = ReconciliationService(db, clock=clock).run()

        (finding,) = report.findings
        assert finding.code == PAID_WITHOUT_WITHDRAWAL
        assert finding.payroll_record_id == payroll_id

    def test_net_pay_changed_after_payment(self, db, session_factory, orchestrator, test_data, clock):
        account_id = test_data.create_account("1000")
        payroll_id = test_data.create_approved_payroll("600")
        orchestrator.pay(payroll_id, account_id)
        _force_payroll(session_factory, payroll_id, net_pay=Decimal("650"), gross_pay=Decimal("650"))

        report = ReconciliationService(db, clock=clock).run()

        (finding,) = report.findings
        assert finding.code == AMOUNT_MISMATCH
        assert "650.00" in finding.detail

    def test_paid_account_differs_from_entry(self, db, session_factory, orchestrator, test_data, clock):
        account_id = test_data.create_account("1000")
        other_id = test_data.create_account("1000", name="Reserve")
        payroll_id = test_data.create_approved_payroll("600")
        orchestrator.pay(payroll_id, account_id)
        _force_payroll(session_factory, payroll_id, bank_account_id=other_id)

        report = ReconciliationService(db, clock=clock).run()

        assert report.by_code == {AMOUNT_MISMATCH: 1}

    def test_overdrawn_account(self, db, session_factory, test_data, clock):
        account_id = test_data.create_account("100")
        _insert_raw_entry(session_factory, clock, account_id, "150")

        report = ReconciliationService(db, clock=clock).run()

        assert report.by_code == {NEGATIVE_BALANCE: 1, LEDGER_VERSION_DRIFT: 1}
        negative = next(f for f in report.findings if f.code == NEGATIVE_BALANCE)
        assert "-50.00" in negative.detail

    def test_findings_are_published(self, db, session_factory, emitter, test_data, clock):
        account_id = test_data.create_account("100")
        _insert_raw_entry(session_factory, clock, account_id, "150")
        published = []
        emitter.on_category(EventCategory.RECONCILIATION, published.append)

        report = ReconciliationService(db, emitter=emitter, clock=clock).run()

        assert len(published) == len(report.findings) == 2
        assert all(isinstance(e, LedgerInconsistencyDetected) for e in published)
        assert {e.finding_code for e in published} == {NEGATIVE_BALANCE, LEDGER_VERSION_DRIFT}

    def test_report_serializes(self, db, session_factory, test_data, clock):
        account_id = test_data.create_account("100")
        _insert_raw_entry(session_factory, clock, account_id, "150")

        data = ReconciliationService(db, clock=clock).run().to_dict()

        assert data["ok"] is False
        assert data["checked_at"] == "2024-02-01T09:30:00+00:00"
        assert data["findings"][0]["bank_account_id"] == str(account_id)
