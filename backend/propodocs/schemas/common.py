"""
Propodocs Backend — Shared Response Schemas
=============================================

What:  Error and health response models shared by every router.
Why:   Clients need a consistent structure to parse errors programmatically.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for API payloads exchanged with the frontend.

    The frontend speaks camelCase (proposalId, viewStats); Python code uses
    snake_case attributes. Both spellings are accepted on input, camelCase is
    emitted on output (FastAPI serializes response models by alias).
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "all_providers_failed",
            "message": "All AI providers failed to produce a result. Please try again later.",
            "details": {"attempts": [{"provider": "gemini", "outcome": "error", ...}]},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    """
    Health check response showing service and dependency status.

    Status levels:
        healthy:   database reachable and at least one AI provider usable
        degraded:  database reachable, no AI provider usable
        unhealthy: database unreachable
    """
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    providers: Dict[str, str] = Field(
        description="Per AI provider: available, unconfigured, circuit_open"
    )
    uptime_seconds: float = Field(description="Seconds since service started")
