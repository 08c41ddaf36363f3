"""
Expense Tracker API — Health Check Routes
===========================================

What:  Liveness and readiness endpoints for load balancers and monitors.
How:   Both read `DatabaseManager.current_state()`; neither performs I/O, so
       a hung or unreachable database never delays or fails /health.

Status levels:
    /health        200 always; status "ok" when the database is connected,
                   "degraded" otherwise
    /health/ready  200 when the database is connected, 503 otherwise
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.database import ConnectionState
from app.dependencies import get_application
from app.schemas.system import HealthResponse, ReadinessResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service liveness check",
    description=(
        "Reports process liveness, uptime and the database connection state. "
        "Always answers 200 while the process is serving."
    ),
)
async def health_check(application=Depends(get_application)) -> HealthResponse:
    db_state = application.database.current_state()
    return HealthResponse(
        status="ok" if db_state is ConnectionState.CONNECTED else "degraded",
        timestamp=datetime.now(timezone.utc),
        uptime=round(application.uptime, 3),
        environment=application.settings.environment.value,
        database=db_state.value,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
    summary="Service readiness check",
)
async def readiness_check(application=Depends(get_application)):
    db_state = application.database.current_state()
    ready = db_state is ConnectionState.CONNECTED and application.coordinator.accepting_requests
    body = ReadinessResponse(ready=ready, database=db_state.value)
    if not ready:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
