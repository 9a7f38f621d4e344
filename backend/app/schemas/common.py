"""
Doll Pin API: Shared Schema Pieces
====================================

What:  The camelCase base model used by every request/response schema, plus
       the envelopes that are not tied to a single resource.
How:   `CamelModel` generates camelCase aliases (image_url → imageUrl) and
       still accepts the snake_case field names when constructing models
       in Python. FastAPI serializes response models by alias.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(CamelModel):
    """Liveness payload for GET /."""
    message: str = Field(description="Human-readable status message")


class HealthResponse(CamelModel):
    """
    What:  Health check response for GET /health.
    Who:   Docker health checks and load balancers.
    """
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    upload_dir: str = Field(description="Upload directory state: writable, unavailable")
    uptime_seconds: float = Field(description="Seconds since service started")


class ErrorResponse(BaseModel):
    """
    Standardized failure envelope for all API errors.

    Example:
        {
            "success": false,
            "error": "not_found",
            "message": "Doll with ID '...' was not found",
            "request_id": "1f2e3d4c"
        }
    """
    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    errors: Optional[List[str]] = Field(default=None, description="One entry per invalid field")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")
