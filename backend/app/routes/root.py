"""
Expense Tracker API — Root Route
==================================

What:  Banner endpoint confirming the process is up and which build it runs.
"""

from fastapi import APIRouter, Depends

from app import __version__
from app.dependencies import get_application
from app.schemas.system import RootResponse

router = APIRouter(tags=["System"])


@router.get("/", response_model=RootResponse, summary="API banner")
async def read_root(application=Depends(get_application)) -> RootResponse:
    settings = application.settings
    return RootResponse(
        message=f"Smart Expense Tracker API is running on port {settings.port}",
        status="success",
        version=__version__,
        environment=settings.environment.value,
    )
