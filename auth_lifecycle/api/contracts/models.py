"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class SessionResponse(BaseModel):
    """Login/refresh response; the tokens themselves travel in cookies."""

    user_id: str
    access_expires_in: int
    refresh_expires_in: int


class AuthMeResponse(BaseModel):
    """Current user endpoint response payload."""

    user_id: str
    roles: list[str]
    permissions: list[str]


class StatusResponse(BaseModel):
    """Acknowledgement for commands without a body."""

    status: Literal["ok"]
