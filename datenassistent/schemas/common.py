"""
Common Schemas

Shared response schemas used by the API layer.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from datenassistent.core.utils import utc_now


class ErrorDetail(BaseModel):
    """Error detail in response."""

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    service: str = "datenassistent"
    version: str = "0.1.0"
    timestamp: datetime = Field(default_factory=utc_now)


class DetailedHealthResponse(HealthResponse):
    """Health check including dependency status."""

    checks: dict[str, str] = Field(default_factory=dict)
