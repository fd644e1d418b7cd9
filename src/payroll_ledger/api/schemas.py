"""Pydantic schemas for API request/response models."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Errors
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str
    field: str | None = None


# ============================================================================
# Working hours schemas
# ============================================================================


class WorkingHourCreate(BaseModel):
    """Schema for recording a working-hour entry.

    Give total_hours, or start_time and end_time to have it computed.
    """

    worker_id: UUID
    work_date: date
    hourly_rate: Decimal
    total_hours: Decimal | None = None
    start_time: time | None = None
    end_time: time | None = None
    client_id: UUID | None = None
    project_id: UUID | None = None
    notes: str | None = None
    status: Literal["pending", "approved"] = "pending"


class WorkingHourResponse(BaseModel):
    """Schema for working-hour entry response."""

    model_config = ConfigDict(from_attributes=True)

    working_hour_entry_id: UUID
    worker_id: UUID
    client_id: UUID | None = None
    project_id: UUID | None = None
    work_date: date
    start_time: time | None = None
    end_time: time | None = None
    total_hours: Decimal
    hourly_rate: Decimal
    status: str
    payroll_record_id: UUID | None = None
    notes: str | None = None


class WorkingHourListResponse(BaseModel):
    """Schema for listing working-hour entries."""

    items: list[WorkingHourResponse]
    total: int


class HoursSummaryResponse(BaseModel):
    """Schema for aggregated approved hours."""

    model_config = ConfigDict(from_attributes=True)

    worker_id: UUID
    period_start: date
    period_end: date
    total_hours: Decimal
    average_rate: Decimal
    gross_amount: Decimal
    entry_count: int


# ============================================================================
# Payroll schemas
# ============================================================================


class PayrollCreate(BaseModel):
    """Schema for creating a payroll record.

    Without total_hours and hourly_rate the record is built from the
    worker's approved hours in the period.
    """

    worker_id: UUID
    period_start: date
    period_end: date
    deductions: Decimal = Decimal("0")
    total_hours: Decimal | None = None
    hourly_rate: Decimal | None = None


class PayrollUpdate(BaseModel):
    """Schema for editing a pending payroll record."""

    total_hours: Decimal | None = None
    hourly_rate: Decimal | None = None
    deductions: Decimal | None = None


class PayrollResponse(BaseModel):
    """Schema for payroll record response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    worker_id: UUID
    period_start: date
    period_end: date
    total_hours: Decimal
    hourly_rate: Decimal
    gross_pay: Decimal
    deductions: Decimal
    net_pay: Decimal
    status: str
    bank_account_id: UUID | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PaymentRequest(BaseModel):
    """Schema for paying an approved payroll record."""

    bank_account_id: UUID | None = None  # primary house account when omitted
    actor_id: UUID | None = None


class PaymentResponse(BaseModel):
    """Schema for a committed payment."""

    model_config = ConfigDict(from_attributes=True)

    payroll_record_id: UUID
    bank_account_id: UUID
    ledger_entry_id: UUID | None = None
    amount: Decimal
    balance_after: Decimal
    attempts: int
    notified: bool


# ============================================================================
# Bank account schemas
# ============================================================================


class BankAccountCreate(BaseModel):
    """Schema for opening a bank account."""

    name: str = Field(min_length=1)
    opening_balance: Decimal = Decimal("0")
    is_primary: bool = False
    ownership: Literal["house", "worker"] = "house"
    owner_worker_id: UUID | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)


class BankAccountResponse(BaseModel):
    """Schema for bank account response."""

    model_config = ConfigDict(from_attributes=True)

    bank_account_id: UUID
    name: str
    opening_balance: Decimal
    is_primary: bool
    ownership: str
    owner_worker_id: UUID | None = None
    currency: str
    created_at: datetime


class BalanceResponse(BaseModel):
    """Schema for a derived account balance."""

    model_config = ConfigDict(from_attributes=True)

    bank_account_id: UUID
    opening_balance: Decimal
    total_deposits: Decimal
    total_withdrawals: Decimal
    balance: Decimal
    ledger_version: int


class DepositCreate(BaseModel):
    """Schema for recording a deposit."""

    amount: Decimal = Field(gt=0)
    category: str = Field(default="funding", min_length=1)
    description: str | None = None
    entry_date: date | None = None
    idempotency_key: str | None = Field(default=None, max_length=128)


class PostingResponse(BaseModel):
    """Schema for a ledger posting."""

    model_config = ConfigDict(from_attributes=True)

    entry_id: UUID
    is_new: bool
    entry_type: str
    amount: Decimal
    ledger_version: int


class LedgerEntryResponse(BaseModel):
    """Schema for a ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    ledger_entry_id: UUID | None = None
    bank_account_id: UUID
    entry_type: str
    amount: Decimal
    category: str
    entry_date: date
    description: str | None = None
    payroll_record_id: UUID | None = None
    worker_id: UUID | None = None
    created_at: datetime


class LedgerListResponse(BaseModel):
    """Schema for listing ledger entries."""

    items: list[LedgerEntryResponse]
    total: int


# ============================================================================
# Reconciliation schemas
# ============================================================================


class ReconciliationResponse(BaseModel):
    """Schema for a reconciliation run."""

    checked_at: datetime
    accounts_checked: int
    payrolls_checked: int
    ok: bool
    by_code: dict[str, int]
    findings: list[dict[str, Any]]
