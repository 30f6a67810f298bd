"""HTTP middleware and exception handler wiring for FastAPI apps."""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from auth_lifecycle.api.contracts import ApiErrorResponse
from auth_lifecycle.api.errors import ApiErrorCode, api_error_from_auth_error, to_error_payload
from auth_lifecycle.auth.errors import AuthError, UserServiceError
from auth_lifecycle.core.config import AppConfig
from auth_lifecycle.core.logging import set_correlation_id

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'",
}


def _error_response(status_code: int, error_code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiErrorResponse(error_code=error_code, message=message).model_dump(),
    )


def register_http_middleware(app: FastAPI, *, config: AppConfig, logger: Any) -> None:
    """Attach request size limit, correlation id and security headers."""

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                parsed_length = int(content_length)
            except ValueError:
                parsed_length = 0
            if parsed_length > config.security.request_max_bytes:
                return _error_response(
                    413,
                    ApiErrorCode.REQUEST_TOO_LARGE,
                    f"Request size exceeds configured limit ({config.security.request_max_bytes} bytes).",
                )
        return await call_next(request)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        correlation_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-correlation-id")
            or uuid.uuid4().hex
        )
        set_correlation_id(correlation_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        logger.info(
            "request_completed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
            },
        )
        return response


def register_exception_handlers(app: FastAPI, *, logger: Any) -> None:
    """Attach API exception handlers that return stable error contracts."""

    def _log(level: str, event: str, request: Request, status_code: int, **extra: Any) -> None:
        getattr(logger, level)(
            event,
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                **extra,
            },
        )

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        payload = to_error_payload(exc.detail, exc.status_code)
        _log("warning", "http_exception", request, exc.status_code)
        return JSONResponse(
            status_code=exc.status_code,
            content=ApiErrorResponse(**payload).model_dump(),
        )

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError) -> JSONResponse:
        api_error = api_error_from_auth_error(exc)
        _log(
            "warning",
            "auth_error",
            request,
            api_error.status_code,
            error_kind=str(exc.kind),
            error=exc.__class__.__name__,
        )
        return JSONResponse(
            status_code=api_error.status_code,
            content=ApiErrorResponse(**to_error_payload(api_error.detail, api_error.status_code)).model_dump(),
        )

    @app.exception_handler(UserServiceError)
    async def handle_user_service_error(request: Request, exc: UserServiceError) -> JSONResponse:
        _log("error", "user_service_error", request, 503, error=str(exc))
        return _error_response(
            503,
            ApiErrorCode.USER_SERVICE_UNAVAILABLE,
            "User service is unavailable, retry later.",
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        _log("warning", "validation_exception", request, 422)
        # Field inputs are left out so submitted passwords never echo back.
        message = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
            for error in exc.errors()
        )
        return _error_response(422, ApiErrorCode.VALIDATION_ERROR, message or "Invalid request")

    @app.exception_handler(Exception)
    async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unexpected_exception",
            extra={"path": request.url.path, "method": request.method, "status_code": 500},
        )
        return _error_response(500, ApiErrorCode.INTERNAL_SERVER_ERROR, "Internal server error")
