"""Ledger Reconciliation - Cross-checks the ledger against payroll state.

The payment transaction keeps the salary withdrawal and the paid status
together, but a store that fails mid-commit, a manual SQL fix or a bug
can still leave them apart. This job finds such damage:

- orphaned_withdrawal: salary withdrawal linked to a record that is not paid
- paid_without_withdrawal: paid record with net pay but no linked withdrawal
- amount_mismatch: linked withdrawal differs from the record (amount or account)
- negative_balance: account whose derived balance is below zero
- ledger_version_drift: account version differs from its entry count

Findings are reported, logged and published. Nothing is corrected
automatically; the ledger is append-only and fixes go through a
compensating entry.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_ledger.clock import Clock, SystemClock
from payroll_ledger.events import EventEmitter, EventMetadata, LedgerInconsistencyDetected
from payroll_ledger.models import BankAccount, LedgerEntry, PayrollRecord
from payroll_ledger.services.ledger_service import LedgerService, to_money
from payroll_ledger.services.state_machine import PayrollStatus

logger = logging.getLogger(__name__)

ORPHANED_WITHDRAWAL = "orphaned_withdrawal"
PAID_WITHOUT_WITHDRAWAL = "paid_without_withdrawal"
AMOUNT_MISMATCH = "amount_mismatch"
NEGATIVE_BALANCE = "negative_balance"
LEDGER_VERSION_DRIFT = "ledger_version_drift"


@dataclass(frozen=True)
class Finding:
    """One inconsistency between the ledger and payroll state."""

    code: str
    detail: str
    bank_account_id: UUID | None = None
    payroll_record_id: UUID | None = None
    ledger_entry_id: UUID | None = None


@dataclass
class ReconciliationReport:
    """Result of a reconciliation run."""

    checked_at: datetime
    accounts_checked: int = 0
    payrolls_checked: int = 0
    findings: list[Finding] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Whether the run found nothing."""
        return not self.findings

    @property
    def by_code(self) -> dict[str, int]:
        return dict(Counter(f.code for f in self.findings))

    def to_dict(self) -> dict:
        return {
            "checked_at": self.checked_at.isoformat(),
            "accounts_checked": self.accounts_checked,
            "payrolls_checked": self.payrolls_checked,
            "ok": self.ok,
            "by_code": self.by_code,
            "findings": [
                {
                    "code": f.code,
                    "detail": f.detail,
                    "bank_account_id": str(f.bank_account_id) if f.bank_account_id else None,
                    "payroll_record_id": str(f.payroll_record_id) if f.payroll_record_id else None,
                    "ledger_entry_id": str(f.ledger_entry_id) if f.ledger_entry_id else None,
                }
                for f in self.findings
            ],
        }


class ReconciliationService:
    """Read-only consistency check over ledger and payroll records."""

    def __init__(
        self,
        db: Session,
        emitter: EventEmitter | None = None,
        clock: Clock | None = None,
    ):
        self.db = db
        self.emitter = emitter or EventEmitter()
        self.clock = clock or SystemClock()
        self.ledger = LedgerService(db, clock=self.clock)

    def run(self) -> ReconciliationReport:
        """Run every check and publish each finding.

        Returns:
            ReconciliationReport with all findings
        """
        report = ReconciliationReport(checked_at=self.clock.now())
        report.accounts_checked = self.db.execute(select(func.count(BankAccount.bank_account_id))).scalar_one()
        report.payrolls_checked = self.db.execute(
            select(func.count(PayrollRecord.payroll_record_id))
        ).scalar_one()

        report.findings.extend(self.find_orphaned_withdrawals())
        report.findings.extend(self.find_paid_without_withdrawal())
        report.findings.extend(self.find_amount_mismatches())
        report.findings.extend(self.find_negative_balances())
        report.findings.extend(self.find_version_drift())

        for finding in report.findings:
            self._publish(finding)

        if report.ok:
            logger.info(
                "Reconciliation clean: %d accounts, %d payroll records",
                report.accounts_checked,
                report.payrolls_checked,
            )
        return report

    def find_orphaned_withdrawals(self) -> list[Finding]:
        rows = self.db.execute(
            select(LedgerEntry, PayrollRecord.status)
            .join(PayrollRecord, PayrollRecord.payroll_record_id == LedgerEntry.payroll_record_id)
            .where(PayrollRecord.status != PayrollStatus.PAID.value)
        ).all()
        return [
            Finding(
                code=ORPHANED_WITHDRAWAL,
                detail=(
                    f"Withdrawal of {to_money(entry.amount)} is linked to payroll "
                    f"{entry.payroll_record_id} in status '{status}'"
                ),
                bank_account_id=entry.bank_account_id,
                payroll_record_id=entry.payroll_record_id,
                ledger_entry_id=entry.ledger_entry_id,
            )
            for entry, status in rows
        ]

    def find_paid_without_withdrawal(self) -> list[Finding]:
        records = self.db.execute(
            select(PayrollRecord)
            .outerjoin(LedgerEntry, LedgerEntry.payroll_record_id == PayrollRecord.payroll_record_id)
            .where(
                PayrollRecord.status == PayrollStatus.PAID.value,
                LedgerEntry.ledger_entry_id.is_(None),
                PayrollRecord.net_pay > 0,
            )
        ).scalars().all()
        return [
            Finding(
                code=PAID_WITHOUT_WITHDRAWAL,
                detail=f"Payroll {record.payroll_record_id} is paid but has no withdrawal",
                bank_account_id=record.bank_account_id,
                payroll_record_id=record.payroll_record_id,
            )
            for record in records
        ]

    def find_amount_mismatches(self) -> list[Finding]:
        rows = self.db.execute(
            select(LedgerEntry, PayrollRecord)
            .join(PayrollRecord, PayrollRecord.payroll_record_id == LedgerEntry.payroll_record_id)
            .where(PayrollRecord.status == PayrollStatus.PAID.value)
        ).all()

        findings = []
        for entry, record in rows:
            problems = []
            if entry.entry_type != "withdrawal":
                problems.append(f"entry is a {entry.entry_type}")
            if to_money(entry.amount) != to_money(record.net_pay):
                problems.append(f"amount {to_money(entry.amount)} != net pay {to_money(record.net_pay)}")
            if entry.bank_account_id != record.bank_account_id:
                problems.append(
                    f"posted to {entry.bank_account_id}, record says {record.bank_account_id}"
                )
            if problems:
                findings.append(
                    Finding(
                        code=AMOUNT_MISMATCH,
                        detail=f"Payroll {record.payroll_record_id}: " + "; ".join(problems),
                        bank_account_id=entry.bank_account_id,
                        payroll_record_id=record.payroll_record_id,
                        ledger_entry_id=entry.ledger_entry_id,
                    )
                )
        return findings

    def find_negative_balances(self) -> list[Finding]:
        findings = []
        for account_id in self._account_ids():
            balance = self.ledger.get_balance(account_id)
            if balance < 0:
                findings.append(
                    Finding(
                        code=NEGATIVE_BALANCE,
                        detail=f"Bank account {account_id} balance is {balance}",
                        bank_account_id=account_id,
                    )
                )
        return findings

    def find_version_drift(self) -> list[Finding]:
        counts = dict(
            self.db.execute(
                select(LedgerEntry.bank_account_id, func.count(LedgerEntry.ledger_entry_id))
                .group_by(LedgerEntry.bank_account_id)
            ).all()
        )
        findings = []
        for account_id, version in self.db.execute(
            select(BankAccount.bank_account_id, BankAccount.ledger_version)
        ).all():
            entries = counts.get(account_id, 0)
            if entries != version:
                findings.append(
                    Finding(
                        code=LEDGER_VERSION_DRIFT,
                        detail=(
                            f"Bank account {account_id} is at ledger version {version} "
                            f"but has {entries} entries"
                        ),
                        bank_account_id=account_id,
                    )
                )
        return findings

    def _account_ids(self) -> list[UUID]:
        return list(self.db.execute(select(BankAccount.bank_account_id)).scalars().all())

    def _publish(self, finding: Finding) -> None:
        logger.critical("Ledger inconsistency [%s]: %s", finding.code, finding.detail)
        self.emitter.emit(
            LedgerInconsistencyDetected(
                metadata=EventMetadata.create(timestamp=self.clock.now()),
                finding_code=finding.code,
                bank_account_id=finding.bank_account_id,
                payroll_record_id=finding.payroll_record_id,
                ledger_entry_id=finding.ledger_entry_id,
                detail=finding.detail,
            )
        )
