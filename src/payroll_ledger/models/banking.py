"""Bank account and ledger models.

Covers the money side of payroll:
- Bank accounts (house or worker-owned) with an immutable opening balance
- Ledger entries (append-only deposits and withdrawals)

The balance of an account is never stored; it is derived from the opening
balance and the ledger. ``ledger_version`` is the only mutable column on the
account and exists so writers can serialize on it.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_ledger.models.base import Base, TimestampMixin


class BankAccount(Base, TimestampMixin):
    """A bank account that salary payments are drawn from."""

    __tablename__ = "bank_account"

    bank_account_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ownership: Mapped[str] = mapped_column(String(16), nullable=False, default="house")
    owner_worker_id: Mapped[UUID | None] = mapped_column(nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    ledger_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("ownership IN ('house', 'worker')", name="bank_account_ownership_check"),
        CheckConstraint(
            "ownership = 'house' OR owner_worker_id IS NOT NULL",
            name="bank_account_owner_check",
        ),
        CheckConstraint("ledger_version >= 0", name="bank_account_version_check"),
    )


class LedgerEntry(Base, TimestampMixin):
    """Append-only monetary record against a bank account.

    CRITICAL: rows are never updated or deleted once committed. Mapper
    events below refuse both through the ORM.
    """

    __tablename__ = "ledger_entry"

    ledger_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    bank_account_id: Mapped[UUID] = mapped_column(
        ForeignKey("bank_account.bank_account_id"),
        nullable=False,
    )
    entry_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    entry_date: Mapped[date] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    payroll_record_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_record.payroll_record_id"),
        nullable=True,
        unique=True,
    )
    worker_id: Mapped[UUID | None] = mapped_column(nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(128), nullable=True, unique=True)

    __table_args__ = (
        CheckConstraint("entry_type IN ('deposit', 'withdrawal')", name="ledger_entry_type_check"),
        CheckConstraint("amount > 0", name="ledger_entry_amount_check"),
        Index("ledger_entry_by_account", "bank_account_id", "entry_date"),
    )

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign implied by entry_type."""
        return self.amount if self.entry_type == "deposit" else -self.amount


class AppendOnlyViolation(Exception):
    """Raised when code tries to modify or delete a committed ledger entry."""


@event.listens_for(LedgerEntry, "before_update")
def _refuse_ledger_update(mapper, connection, target):  # noqa: ARG001
    raise AppendOnlyViolation(
        f"Ledger entry {target.ledger_entry_id} is append-only and cannot be updated"
    )


@event.listens_for(LedgerEntry, "before_delete")
def _refuse_ledger_delete(mapper, connection, target):  # noqa: ARG001
    raise AppendOnlyViolation(
        f"Ledger entry {target.ledger_entry_id} is append-only and cannot be deleted"
    )


@event.listens_for(BankAccount, "before_update")
def _refuse_opening_balance_change(mapper, connection, target):  # noqa: ARG001
    history = inspect(target).attrs.opening_balance.history
    if history.has_changes():
        raise AppendOnlyViolation(
            f"Opening balance of bank account {target.bank_account_id} is immutable"
        )
