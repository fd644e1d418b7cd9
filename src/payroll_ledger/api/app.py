"""FastAPI application factory."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from payroll_ledger import __version__
from payroll_ledger.api.routes import (
    accounts_router,
    health_router,
    payrolls_router,
    reconciliation_router,
    working_hours_router,
)
from payroll_ledger.clock import Clock, SystemClock
from payroll_ledger.config import Settings, get_settings
from payroll_ledger.database import init_db
from payroll_ledger.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidStateTransition,
    NotFoundError,
    PayrollLedgerError,
    PersistenceFailure,
    ValidationError,
)
from payroll_ledger.events import EventEmitter
from payroll_ledger.services.notification_service import NotificationDispatcher
from payroll_ledger.services.payment_orchestrator import PaymentOrchestrator

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateTransition: status.HTTP_409_CONFLICT,
    InsufficientFunds: status.HTTP_409_CONFLICT,
    ConcurrencyConflict: status.HTTP_409_CONFLICT,
    PersistenceFailure: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def create_app(
    session_factory: sessionmaker[Session] | None = None,
    emitter: EventEmitter | None = None,
    settings: Settings | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    With no session factory the application connects to
    ``settings.database_url``.
    """
    settings = settings or get_settings()
    if session_factory is None:
        _, session_factory = init_db(settings.database_url)
    emitter = emitter or EventEmitter()
    clock = clock or SystemClock()

    app = FastAPI(
        title="Payroll Ledger API",
        description="Working hours, payroll records and salary payments",
        version=__version__,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.emitter = emitter
    app.state.clock = clock
    app.state.orchestrator = PaymentOrchestrator(
        session_factory,
        emitter=emitter,
        clock=clock,
        policy=settings.payment_policy,
    )
    app.state.dispatcher = NotificationDispatcher(session_factory, clock=clock)
    app.state.dispatcher.register(emitter)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollLedgerError)
    async def domain_exception_handler(
        request: Request, exc: PayrollLedgerError
    ) -> JSONResponse:
        """Map domain errors to HTTP responses."""
        status_code = status.HTTP_400_BAD_REQUEST
        for error_type, mapped in ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code = mapped
                break

        content = {"detail": str(exc), "code": exc.code}
        if isinstance(exc, ValidationError) and exc.field:
            content["field"] = exc.field
        return JSONResponse(status_code=status_code, content=content)

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(working_hours_router, prefix="/api/v1")
    app.include_router(payrolls_router, prefix="/api/v1")
    app.include_router(accounts_router, prefix="/api/v1")
    app.include_router(reconciliation_router, prefix="/api/v1")

    return app
