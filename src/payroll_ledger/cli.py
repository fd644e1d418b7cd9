"""Payroll Ledger Command Line Interface.

Provides operational tools for:
- Schema creation
- Balance queries
- Reconciliation runs
- Ledger verification

Usage:
    python -m payroll_ledger.cli init-db
    python -m payroll_ledger.cli balance --account-id X
    python -m payroll_ledger.cli reconcile
    python -m payroll_ledger.cli verify-ledger [--account-id X]

Results are printed as JSON on stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from payroll_ledger.config import get_settings
from payroll_ledger.database import create_schema, get_engine, make_session_factory
from payroll_ledger.errors import PayrollLedgerError
from payroll_ledger.logging_config import configure_logging
from payroll_ledger.models import BankAccount
from payroll_ledger.services.ledger_service import LedgerService
from payroll_ledger.services.reconciliation import ReconciliationService

logger = logging.getLogger(__name__)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


class LedgerCli:
    """Payroll Ledger Command Line Interface."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.parser = self._build_parser()
        self._session_factory = session_factory

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_ledger.cli",
            description="Payroll ledger operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: DATABASE_URL from the environment)",
        )
        parser.add_argument(
            "--log-level",
            type=str,
            default="WARNING",
            help="Log level for diagnostics on stderr (default: WARNING)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # init-db command
        subparsers.add_parser(
            "init-db",
            help="Create missing tables",
        )

        # balance command
        balance = subparsers.add_parser(
            "balance",
            help="Query account balance",
        )
        balance.add_argument(
            "--account-id",
            type=parse_uuid,
            required=True,
            help="Bank account ID",
        )

        # reconcile command
        subparsers.add_parser(
            "reconcile",
            help="Cross-check the ledger against payroll records",
        )

        # verify-ledger command
        verify = subparsers.add_parser(
            "verify-ledger",
            help="Recompute balances entry by entry",
        )
        verify.add_argument(
            "--account-id",
            type=parse_uuid,
            help="Only verify this account (default: all accounts)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        configure_logging(parsed.log_level.upper())

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "balance": self._cmd_balance,
            "reconcile": self._cmd_reconcile,
            "verify-ledger": self._cmd_verify_ledger,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except PayrollLedgerError as e:
            _print_json({"error": str(e), "code": e.code})
            return 2

    def _sessions(self, args: argparse.Namespace) -> sessionmaker[Session]:
        if self._session_factory is None:
            url = args.database_url or get_settings().database_url
            self._session_factory = make_session_factory(get_engine(url))
        return self._session_factory

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create the schema."""
        factory = self._sessions(args)
        create_schema(factory.kw["bind"])
        _print_json({"status": "ok", "tables_created": True})
        return 0

    def _cmd_balance(self, args: argparse.Namespace) -> int:
        """Query account balance."""
        with self._sessions(args)() as session:
            snapshot = LedgerService(session).get_balance_snapshot(args.account_id)
            _print_json(
                {
                    "bank_account_id": snapshot.bank_account_id,
                    "opening_balance": snapshot.opening_balance,
                    "total_deposits": snapshot.total_deposits,
                    "total_withdrawals": snapshot.total_withdrawals,
                    "balance": snapshot.balance,
                    "ledger_version": snapshot.ledger_version,
                }
            )
        return 0

    def _cmd_reconcile(self, args: argparse.Namespace) -> int:
        """Run reconciliation. Exit code 1 when anything was found."""
        with self._sessions(args)() as session:
            report = ReconciliationService(session).run()
        _print_json(report.to_dict())
        return 0 if report.ok else 1

    def _cmd_verify_ledger(self, args: argparse.Namespace) -> int:
        """Verify each account's balance against a row-by-row recomputation."""
        with self._sessions(args)() as session:
            ledger = LedgerService(session)
            if args.account_id is not None:
                account_ids = [args.account_id]
            else:
                account_ids = list(session.execute(select(BankAccount.bank_account_id)).scalars())

            results = {str(account_id): ledger.verify_account(account_id) for account_id in account_ids}

        failed = [account_id for account_id, ok in results.items() if not ok]
        for account_id in failed:
            logger.error("Ledger verification failed for account %s", account_id)
        _print_json({"accounts": results, "ok": not failed})
        return 0 if not failed else 1


def main() -> int:
    """CLI entry point."""
    cli = LedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
