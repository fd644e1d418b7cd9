"""Health probes: database reachability, schema readiness, liveness."""

from datetime import datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from payroll_ledger.api.dependencies import AppClock, DbSession
from payroll_ledger.models import Base

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str


@router.get("/health", response_model=HealthResponse)
def health_check(db: DbSession, clock: AppClock) -> HealthResponse:
    """Report ``degraded`` when the database cannot answer a trivial query."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        database = "unhealthy"
    else:
        database = "healthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        timestamp=clock.now(),
        database=database,
    )


@router.get("/ready")
def readiness_check(db: DbSession) -> dict[str, str]:
    """Ready once every ledger table exists."""
    try:
        present = set(inspect(db.get_bind()).get_table_names())
    except SQLAlchemyError:
        present = set()
    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"status": "not_ready", "missing_tables": missing},
        )
    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
