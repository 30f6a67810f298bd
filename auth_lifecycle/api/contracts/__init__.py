"""Public API response contracts."""

from auth_lifecycle.api.contracts.models import (
    ApiErrorResponse,
    AuthMeResponse,
    HealthResponse,
    SessionResponse,
    StatusResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthMeResponse",
    "HealthResponse",
    "SessionResponse",
    "StatusResponse",
]
