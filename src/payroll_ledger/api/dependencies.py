"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from payroll_ledger.clock import Clock
from payroll_ledger.config import Settings
from payroll_ledger.events import EventEmitter
from payroll_ledger.services.payment_orchestrator import PaymentOrchestrator


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """Get database session dependency.

    Routes commit explicitly; anything left uncommitted is rolled back
    when the session closes.
    """
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_emitter(request: Request) -> EventEmitter:
    """Application-wide event emitter."""
    return request.app.state.emitter


def get_clock(request: Request) -> Clock:
    """Application clock."""
    return request.app.state.clock


def get_orchestrator(request: Request) -> PaymentOrchestrator:
    """Payment orchestrator (manages its own sessions)."""
    return request.app.state.orchestrator


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Emitter = Annotated[EventEmitter, Depends(get_emitter)]
AppClock = Annotated[Clock, Depends(get_clock)]
Orchestrator = Annotated[PaymentOrchestrator, Depends(get_orchestrator)]
