"""HTTP middleware that enforces access tokens on protected API routes."""

from __future__ import annotations

from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from auth_lifecycle.api.contracts import ApiErrorResponse
from auth_lifecycle.api.errors import ApiErrorCode, api_error_from_auth_error, to_error_payload
from auth_lifecycle.auth.errors import AuthError
from auth_lifecycle.auth.service import SessionOrchestrator

PUBLIC_PATHS = frozenset(
    {
        "/api/health",
        "/api/auth/login",
        "/api/auth/refresh",
        "/api/auth/logout",
        "/api/auth/passcode/verify",
        "/api/auth/password/forgot",
        "/api/auth/password/reset",
    }
)


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from authorization header value."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def extract_access_token(request: Request, cookie_name: str) -> str:
    """Prefer the access cookie and fall back to a bearer header."""
    return request.cookies.get(cookie_name) or extract_bearer_token(
        request.headers.get("authorization")
    )


def create_auth_middleware(service: SessionOrchestrator, *, access_cookie_name: str) -> Callable:
    """Create middleware that validates access tokens outside the public paths."""

    async def auth_middleware(request: Request, call_next: Callable):
        path = request.url.path
        if not path.startswith("/api/") or path in PUBLIC_PATHS:
            return await call_next(request)

        token = extract_access_token(request, access_cookie_name)
        if not token:
            return JSONResponse(
                status_code=401,
                content=ApiErrorResponse(
                    error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
                    message="Missing access token",
                ).model_dump(),
            )

        try:
            claims = service.verify_access_token(token)
        except AuthError as exc:
            api_error = api_error_from_auth_error(exc)
            return JSONResponse(
                status_code=api_error.status_code,
                content=to_error_payload(api_error.detail, api_error.status_code),
            )

        request.state.user = claims
        return await call_next(request)

    return auth_middleware
