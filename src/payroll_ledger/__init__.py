"""Payroll ledger: working hours, payroll records and salary payments."""

__version__ = "0.1.0"
