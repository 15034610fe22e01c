"""Shared Pydantic models used across packages."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Standard health check response."""

    status: str = "healthy"
    service: str
    version: str


class ErrorResponse(BaseModel):
    """Standard error response.

    ``error`` names the failure class (e.g. ``EmptyCartError``) so clients
    can branch on it; ``detail`` carries the user-facing message.
    """

    error: str
    detail: str | None = None
    status_code: int = 500
    path: str | None = None
