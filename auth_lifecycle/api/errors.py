"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException

from auth_lifecycle.auth.errors import (
    AuthError,
    AuthenticationFailedError,
    DuplicateCredentialError,
    PasscodeIssuanceError,
    PasscodeRejectedError,
    SessionExpiredError,
    TokenExpiredError,
    TokenValidationError,
    VerificationPropagationError,
    WeakPasswordError,
)


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_MISSING_TOKEN = "AUTH_MISSING_TOKEN"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_SESSION_EXPIRED = "AUTH_SESSION_EXPIRED"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_FORBIDDEN = "AUTH_FORBIDDEN"
    CREDENTIALS_EXIST = "CREDENTIALS_EXIST"
    PASSWORD_POLICY_VIOLATION = "PASSWORD_POLICY_VIOLATION"
    PASSCODE_INVALID = "PASSCODE_INVALID"
    PASSCODE_ISSUANCE_FAILED = "PASSCODE_ISSUANCE_FAILED"
    EMAIL_VERIFICATION_FAILED = "EMAIL_VERIFICATION_FAILED"
    USER_SERVICE_UNAVAILABLE = "USER_SERVICE_UNAVAILABLE"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying stable API error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        """Build an HTTP exception with standard detail structure."""
        super().__init__(
            status_code=status_code,
            detail={"error_code": str(error_code), "message": message},
        )


AUTH_ERROR_RESPONSES: dict[type[AuthError], tuple[int, ApiErrorCode]] = {
    AuthenticationFailedError: (401, ApiErrorCode.AUTH_INVALID_CREDENTIALS),
    SessionExpiredError: (401, ApiErrorCode.AUTH_SESSION_EXPIRED),
    TokenValidationError: (401, ApiErrorCode.AUTH_TOKEN_INVALID),
    TokenExpiredError: (401, ApiErrorCode.AUTH_TOKEN_EXPIRED),
    DuplicateCredentialError: (409, ApiErrorCode.CREDENTIALS_EXIST),
    WeakPasswordError: (422, ApiErrorCode.PASSWORD_POLICY_VIOLATION),
    PasscodeRejectedError: (400, ApiErrorCode.PASSCODE_INVALID),
    VerificationPropagationError: (503, ApiErrorCode.EMAIL_VERIFICATION_FAILED),
    PasscodeIssuanceError: (503, ApiErrorCode.PASSCODE_ISSUANCE_FAILED),
}


def api_error_from_auth_error(exc: AuthError) -> ApiError:
    """Translate an auth core error into its HTTP envelope.

    Unlisted errors become a generic invalid-token 401 so nothing more
    specific leaks to the client.
    """
    status_code, error_code = AUTH_ERROR_RESPONSES.get(
        type(exc), (401, ApiErrorCode.AUTH_TOKEN_INVALID)
    )
    return ApiError(status_code=status_code, error_code=error_code, message=str(exc))


def to_error_payload(detail: Any, status_code: int) -> dict[str, str]:
    """Normalize HTTP exception detail into stable error payload."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"error_code": error_code, "message": message}
    return {
        "error_code": f"HTTP_{status_code}",
        "message": str(detail or "HTTP error"),
    }
