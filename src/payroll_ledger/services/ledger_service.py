"""Ledger Service - Append-only bank ledger and balance calculation.

Provides transactional posting of ledger entries with:
- Deposits and withdrawals against a bank account (no updates/deletes)
- Idempotency via a unique idempotency_key
- Balance derived from opening balance plus the ledger, never stored
- Per-account serialization through a compare-and-set on ledger_version

Entries are inserted with ON CONFLICT DO NOTHING on the idempotency key,
so a retried request returns the entry that is already there. Every append
then bumps ``bank_account.ledger_version`` with
``UPDATE ... WHERE ledger_version = :seen``. A writer that computed a balance
from version N can only append if nobody else appended since, so two writers
can never both spend the same funds.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_ledger.clock import Clock, SystemClock
from payroll_ledger.database import upsert_insert
from payroll_ledger.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    NotFoundError,
    ValidationError,
)
from payroll_ledger.models import BankAccount, LedgerEntry

CENT = Decimal("0.01")

ENTRY_TYPES = ("deposit", "withdrawal")


def to_money(value: object) -> Decimal:
    """Normalize a numeric value from the store to a two-place Decimal."""
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class BalanceSnapshot:
    """Account balance as of one ledger version."""

    bank_account_id: UUID
    opening_balance: Decimal
    total_deposits: Decimal
    total_withdrawals: Decimal
    ledger_version: int

    @property
    def balance(self) -> Decimal:
        """opening_balance + deposits - withdrawals."""
        return self.opening_balance + self.total_deposits - self.total_withdrawals

    def covers(self, amount: Decimal) -> bool:
        """Whether a withdrawal of ``amount`` keeps the balance non-negative."""
        return self.balance >= amount


@dataclass(frozen=True)
class PostResult:
    """Result of a ledger posting operation.

    IMPORTANT: check ``is_new``. If ``is_new=False`` this was a retried
    request and the existing entry was returned; nothing was appended.
    """

    entry_id: UUID
    is_new: bool
    entry_type: str
    amount: Decimal
    ledger_version: int


class LedgerService:
    """Append-only ledger posting and balance service.

    Notes:
    - ledger_entry is append-only (mapper events refuse UPDATE/DELETE).
    - idempotency_key and payroll_record_id are unique.
    - All amounts must be positive; entry_type carries the sign.
    - The service never commits. Callers own the transaction.
    """

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()

    def open_account(
        self,
        *,
        name: str,
        opening_balance: Decimal,
        is_primary: bool = False,
        ownership: str = "house",
        owner_worker_id: UUID | None = None,
        currency: str = "USD",
    ) -> BankAccount:
        """Create a bank account. The opening balance is fixed from here on."""
        if ownership not in ("house", "worker"):
            raise ValidationError(f"Invalid ownership: {ownership}", field="ownership")
        if ownership == "worker" and owner_worker_id is None:
            raise ValidationError(
                "Worker-owned accounts need an owner_worker_id", field="owner_worker_id"
            )

        account = BankAccount(
            name=name,
            opening_balance=to_money(opening_balance),
            is_primary=is_primary,
            ownership=ownership,
            owner_worker_id=owner_worker_id,
            currency=currency,
            ledger_version=0,
        )
        self.db.add(account)
        self.db.flush()
        return account

    def get_account(self, bank_account_id: UUID) -> BankAccount:
        """Load a bank account or raise NotFoundError."""
        account = self.db.get(BankAccount, bank_account_id)
        if account is None:
            raise NotFoundError("BankAccount", bank_account_id)
        return account

    def get_primary_account(self) -> BankAccount:
        """The house account salary payments default to.

        The account flagged ``is_primary`` wins; without one, the first
        house account by name.
        """
        account = self.db.execute(
            select(BankAccount)
            .where(BankAccount.ownership == "house")
            .order_by(BankAccount.is_primary.desc(), BankAccount.name, BankAccount.created_at)
            .limit(1)
        ).scalar_one_or_none()
        if account is None:
            raise NotFoundError("BankAccount", "primary")
        return account

    def get_balance_snapshot(
        self,
        bank_account_id: UUID,
        *,
        for_update: bool = False,
    ) -> BalanceSnapshot:
        """Compute the current balance together with the version it reflects.

        The version is read BEFORE the sums. If another writer appends in
        between, the sums may include its entry but the version will be
        stale, so the caller's compare-and-set fails and it retries. The
        opposite order could pair stale sums with a fresh version.

        Args:
            bank_account_id: The account to compute
            for_update: Take a row lock on the account (PostgreSQL)

        Returns:
            BalanceSnapshot with opening balance, totals and ledger_version
        """
        head = select(BankAccount.opening_balance, BankAccount.ledger_version).where(
            BankAccount.bank_account_id == bank_account_id
        )
        if for_update:
            head = head.with_for_update()

        row = self.db.execute(head).first()
        if row is None:
            raise NotFoundError("BankAccount", bank_account_id)
        opening_balance, ledger_version = row

        deposits = self._sum_entries(bank_account_id, "deposit")
        withdrawals = self._sum_entries(bank_account_id, "withdrawal")

        return BalanceSnapshot(
            bank_account_id=bank_account_id,
            opening_balance=to_money(opening_balance),
            total_deposits=deposits,
            total_withdrawals=withdrawals,
            ledger_version=int(ledger_version),
        )

    def get_balance(self, bank_account_id: UUID) -> Decimal:
        """Current balance of an account."""
        return self.get_balance_snapshot(bank_account_id).balance

    def _sum_entries(self, bank_account_id: UUID, entry_type: str) -> Decimal:
        total = self.db.execute(
            select(func.coalesce(func.sum(LedgerEntry.amount), 0)).where(
                LedgerEntry.bank_account_id == bank_account_id,
                LedgerEntry.entry_type == entry_type,
            )
        ).scalar()
        return to_money(total)

    def record_deposit(
        self,
        *,
        bank_account_id: UUID,
        amount: Decimal,
        category: str,
        description: str | None = None,
        entry_date: date | None = None,
        worker_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> PostResult:
        """Append a deposit to an account."""
        existing = self._find_existing(idempotency_key)
        if existing is not None:
            return existing

        snapshot = self.get_balance_snapshot(bank_account_id, for_update=True)
        return self.append_entry(
            bank_account_id=bank_account_id,
            expected_version=snapshot.ledger_version,
            entry_type="deposit",
            amount=amount,
            category=category,
            description=description,
            entry_date=entry_date,
            worker_id=worker_id,
            idempotency_key=idempotency_key,
        )

    def record_withdrawal(
        self,
        *,
        bank_account_id: UUID,
        amount: Decimal,
        category: str,
        description: str | None = None,
        entry_date: date | None = None,
        worker_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> PostResult:
        """Append a non-payroll withdrawal. Refuses to overdraw the account."""
        existing = self._find_existing(idempotency_key)
        if existing is not None:
            return existing

        snapshot = self.get_balance_snapshot(bank_account_id, for_update=True)
        amount = to_money(amount)
        if not snapshot.covers(amount):
            raise InsufficientFunds(bank_account_id, amount, snapshot.balance)

        return self.append_entry(
            bank_account_id=bank_account_id,
            expected_version=snapshot.ledger_version,
            entry_type="withdrawal",
            amount=amount,
            category=category,
            description=description,
            entry_date=entry_date,
            worker_id=worker_id,
            idempotency_key=idempotency_key,
        )

    def append_entry(
        self,
        *,
        bank_account_id: UUID,
        expected_version: int,
        entry_type: str,
        amount: Decimal,
        category: str,
        description: str | None = None,
        entry_date: date | None = None,
        payroll_record_id: UUID | None = None,
        worker_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> PostResult:
        """Append an entry if the account is still at ``expected_version``.

        Args:
            bank_account_id: Account to post against
            expected_version: ledger_version the caller based its decision on
            entry_type: deposit or withdrawal
            amount: Positive amount to post
            category: Free-form category (salary, funding, ...)
            description: Optional human-readable description
            entry_date: Defaults to today per the service clock
            payroll_record_id: Payroll record this entry pays, if any
            worker_id: Worker the entry relates to, if any
            idempotency_key: Optional unique key for deduplication

        Returns:
            PostResult with the new entry id and the account's new version.
            If ``idempotency_key`` was already posted, the existing entry
            with ``is_new=False``; nothing is appended.

        Raises:
            ConcurrencyConflict: another writer appended first, or the
                payroll record already has a salary entry
        """
        if entry_type not in ENTRY_TYPES:
            raise ValidationError(f"Invalid entry_type: {entry_type}", field="entry_type")
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive", field="amount")

        table = LedgerEntry.__table__
        insert_entry = (
            upsert_insert(self.db, table)
            .values(
                ledger_entry_id=uuid4(),
                bank_account_id=bank_account_id,
                entry_type=entry_type,
                amount=amount,
                category=category,
                entry_date=entry_date or self.clock.today(),
                description=description,
                payroll_record_id=payroll_record_id,
                worker_id=worker_id,
                idempotency_key=idempotency_key,
            )
            .on_conflict_do_nothing(index_elements=["idempotency_key"])
            .returning(table.c.ledger_entry_id)
        )
        try:
            row = self.db.execute(insert_entry).first()
        except IntegrityError as exc:
            raise ConcurrencyConflict(
                "ledger_entry",
                payroll_record_id or bank_account_id,
                "unique key already posted",
            ) from exc

        if row is None:
            # Conflict on idempotency_key - return the entry already posted
            existing = self._find_existing(idempotency_key)
            if existing is None:
                raise ConcurrencyConflict(
                    "ledger_entry", bank_account_id, "entry neither created nor found"
                )
            return existing

        bumped = self.db.execute(
            update(BankAccount)
            .where(
                BankAccount.bank_account_id == bank_account_id,
                BankAccount.ledger_version == expected_version,
            )
            .values(ledger_version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if bumped.rowcount != 1:
            raise ConcurrencyConflict(
                "bank_account",
                bank_account_id,
                f"ledger moved past version {expected_version}",
            )

        return PostResult(
            entry_id=row[0],
            is_new=True,
            entry_type=entry_type,
            amount=amount,
            ledger_version=expected_version + 1,
        )

    def _find_existing(self, idempotency_key: str | None) -> PostResult | None:
        if not idempotency_key:
            return None
        entry = self.db.execute(
            select(LedgerEntry).where(LedgerEntry.idempotency_key == idempotency_key)
        ).scalar_one_or_none()
        if entry is None:
            return None

        version = self.db.execute(
            select(BankAccount.ledger_version).where(
                BankAccount.bank_account_id == entry.bank_account_id
            )
        ).scalar_one()
        return PostResult(
            entry_id=entry.ledger_entry_id,
            is_new=False,
            entry_type=entry.entry_type,
            amount=to_money(entry.amount),
            ledger_version=int(version),
        )

    def list_entries(
        self,
        bank_account_id: UUID,
        *,
        start: date | None = None,
        end: date | None = None,
        entry_type: str | None = None,
    ) -> list[LedgerEntry]:
        """Ledger entries for an account, oldest first."""
        query = select(LedgerEntry).where(LedgerEntry.bank_account_id == bank_account_id)
        if start is not None:
            query = query.where(LedgerEntry.entry_date >= start)
        if end is not None:
            query = query.where(LedgerEntry.entry_date <= end)
        if entry_type is not None:
            query = query.where(LedgerEntry.entry_type == entry_type)
        query = query.order_by(LedgerEntry.entry_date, LedgerEntry.created_at)
        return list(self.db.execute(query).scalars().all())

    def get_entry_for_payroll(self, payroll_record_id: UUID) -> LedgerEntry | None:
        """The salary withdrawal linked to a payroll record, if posted."""
        return self.db.execute(
            select(LedgerEntry).where(LedgerEntry.payroll_record_id == payroll_record_id)
        ).scalar_one_or_none()

    def verify_account(self, bank_account_id: UUID) -> bool:
        """Recompute the balance row by row and compare with the aggregate.

        Returns True when both agree.
        """
        account = self.get_account(bank_account_id)
        running = to_money(account.opening_balance)
        for entry in self.list_entries(bank_account_id):
            running += to_money(entry.signed_amount)
        return running == self.get_balance(bank_account_id)
