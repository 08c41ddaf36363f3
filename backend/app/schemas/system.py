"""
Expense Tracker API — System Endpoint Schemas
===============================================

What:  Response models for `/`, `/health` and `/health/ready`.
Who:   Load balancers, uptime monitors and the deploy smoke test.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class RootResponse(BaseModel):
    message: str = Field(description="Human-readable banner including the port")
    status: str = Field(description="Always 'success' when the process answers")
    version: str = Field(description="Application version")
    environment: str = Field(description="development or production")


class HealthResponse(BaseModel):
    """
    What:  Liveness report.
    When:  Always HTTP 200, whatever the database is doing; `status` is
           'degraded' while the database is not connected.
    """
    status: str = Field(description="ok or degraded")
    timestamp: datetime = Field(description="Server time (UTC ISO 8601)")
    uptime: float = Field(description="Seconds since the application was created")
    environment: str = Field(description="development or production")
    database: str = Field(description="disconnected, connecting, connected or error")


class ReadinessResponse(BaseModel):
    ready: bool
    database: str
