"""Bank account and ledger API endpoints."""

from datetime import date
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Path, status

from payroll_ledger.api.dependencies import AppClock, AppSettings, DbSession
from payroll_ledger.api.schemas import (
    BalanceResponse,
    BankAccountCreate,
    BankAccountResponse,
    DepositCreate,
    ErrorResponse,
    LedgerEntryResponse,
    LedgerListResponse,
    PostingResponse,
)
from payroll_ledger.services.ledger_service import LedgerService

router = APIRouter(prefix="/bank-accounts", tags=["bank-accounts"])


@router.post(
    "",
    response_model=BankAccountResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
def open_bank_account(
    db: DbSession,
    clock: AppClock,
    settings: AppSettings,
    payload: BankAccountCreate,
) -> BankAccountResponse:
    """Open a bank account with a fixed opening balance."""
    values = payload.model_dump()
    values["currency"] = values["currency"] or settings.currency
    account = LedgerService(db, clock=clock).open_account(**values)
    db.commit()
    return BankAccountResponse.model_validate(account)


@router.get(
    "/{bank_account_id}",
    response_model=BankAccountResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_bank_account(
    db: DbSession,
    bank_account_id: Annotated[UUID, Path()],
) -> BankAccountResponse:
    """Get a bank account by ID."""
    return BankAccountResponse.model_validate(LedgerService(db).get_account(bank_account_id))


@router.get(
    "/{bank_account_id}/balance",
    response_model=BalanceResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_balance(
    db: DbSession,
    bank_account_id: Annotated[UUID, Path()],
) -> BalanceResponse:
    """Balance derived from the opening balance and the ledger."""
    snapshot = LedgerService(db).get_balance_snapshot(bank_account_id)
    return BalanceResponse.model_validate(snapshot)


@router.post(
    "/{bank_account_id}/deposits",
    response_model=PostingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def record_deposit(
    db: DbSession,
    clock: AppClock,
    bank_account_id: Annotated[UUID, Path()],
    payload: DepositCreate,
) -> PostingResponse:
    """Append a deposit. Replays with the same idempotency key are no-ops."""
    result = LedgerService(db, clock=clock).record_deposit(
        bank_account_id=bank_account_id, **payload.model_dump()
    )
    db.commit()
    return PostingResponse.model_validate(result)


@router.get(
    "/{bank_account_id}/ledger",
    response_model=LedgerListResponse,
    responses={404: {"model": ErrorResponse}},
)
def list_ledger(
    db: DbSession,
    bank_account_id: Annotated[UUID, Path()],
    start: date | None = None,
    end: date | None = None,
    entry_type: Literal["deposit", "withdrawal"] | None = None,
) -> LedgerListResponse:
    """Ledger entries of an account, oldest first."""
    service = LedgerService(db)
    service.get_account(bank_account_id)
    entries = service.list_entries(bank_account_id, start=start, end=end, entry_type=entry_type)
    return LedgerListResponse(
        items=[LedgerEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )
