"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from auth_lifecycle.api.contracts import (
    ApiErrorResponse,
    AuthMeResponse,
    SessionResponse,
    StatusResponse,
)
from auth_lifecycle.api.errors import ApiError, ApiErrorCode
from auth_lifecycle.auth.models import (
    CredentialsRequest,
    ForgotPasswordRequest,
    LoginRequest,
    ResendPasscodeRequest,
    ResetPasswordRequest,
    SessionCookie,
    SessionTokens,
    TokenClaims,
    VerifyPasscodeRequest,
)
from auth_lifecycle.auth.service import SessionOrchestrator

UNAUTHORIZED = {401: {"model": ApiErrorResponse}}
FORBIDDEN = {401: {"model": ApiErrorResponse}, 403: {"model": ApiErrorResponse}}
UNAVAILABLE = {503: {"model": ApiErrorResponse}}

# Roles trusted to act on behalf of any user. SERVICE is held by the user profile service.
PRIVILEGED_ROLES = frozenset({"ADMIN", "SERVICE"})


def apply_cookies(response: Response, cookies: list[SessionCookie]) -> None:
    """Write session cookie descriptors onto an HTTP response."""
    for cookie in cookies:
        response.set_cookie(
            key=cookie.name,
            value=cookie.value,
            max_age=cookie.max_age,
            path=cookie.path,
            secure=cookie.secure,
            httponly=cookie.httponly,
            samesite=cookie.samesite,
        )


def _session_response(
    service: SessionOrchestrator, response: Response, tokens: SessionTokens
) -> SessionResponse:
    apply_cookies(response, service.session_cookies(tokens))
    return SessionResponse(
        user_id=tokens.user_id,
        access_expires_in=tokens.access_expires_in,
        refresh_expires_in=tokens.refresh_expires_in,
    )


def create_auth_router(service: SessionOrchestrator, *, refresh_cookie_name: str) -> APIRouter:
    """Build authentication router for sessions, passcodes and passwords."""
    router = APIRouter(prefix="/api/auth", tags=["auth"])

    @router.post(
        "/credentials",
        response_model=StatusResponse,
        status_code=201,
        responses={409: {"model": ApiErrorResponse}, **FORBIDDEN, **UNAVAILABLE},
    )
    def create_credentials(req: CredentialsRequest, request: Request) -> StatusResponse:
        """Store initial credentials and email a verification passcode.

        Only privileged callers may do this; the account has no password yet.
        """
        _authorize(request)
        service.create_credentials_and_issue_passcode(req.user_id, req.email, req.password)
        return StatusResponse(status="ok")

    @router.post("/login", response_model=SessionResponse, responses=UNAUTHORIZED)
    def login(req: LoginRequest, response: Response) -> SessionResponse:
        """Authenticate user and set access/refresh cookies."""
        tokens = service.login(req.email, req.password)
        return _session_response(service, response, tokens)

    @router.post("/refresh", response_model=SessionResponse, responses=UNAUTHORIZED)
    def refresh(request: Request, response: Response) -> SessionResponse:
        """Rotate refresh token and issue new session cookies."""
        tokens = service.refresh(request.cookies.get(refresh_cookie_name))
        return _session_response(service, response, tokens)

    @router.post("/logout", response_model=StatusResponse)
    def logout(request: Request, response: Response) -> StatusResponse:
        """Revoke the refresh token and clear both cookies."""
        service.logout(request.cookies.get(refresh_cookie_name))
        apply_cookies(response, service.cleared_cookies())
        return StatusResponse(status="ok")

    @router.post(
        "/passcode/verify",
        response_model=StatusResponse,
        responses={400: {"model": ApiErrorResponse}, **UNAVAILABLE},
    )
    def verify_passcode(req: VerifyPasscodeRequest) -> StatusResponse:
        service.verify_passcode(req.user_id, req.passcode)
        return StatusResponse(status="ok")

    @router.post(
        "/passcode/reset", response_model=StatusResponse, responses={**FORBIDDEN, **UNAVAILABLE}
    )
    def reset_passcode(req: ResendPasscodeRequest, request: Request) -> StatusResponse:
        """Issue a new passcode, replacing any active one."""
        _authorize(request, user_id=req.user_id)
        service.resend_passcode(req.user_id)
        return StatusResponse(status="ok")

    @router.post("/password/forgot", response_model=StatusResponse, status_code=202)
    def forgot_password(req: ForgotPasswordRequest) -> StatusResponse:
        service.forgot_password(req.email)
        return StatusResponse(status="ok")

    @router.put("/password/reset", response_model=StatusResponse, responses=UNAUTHORIZED)
    def reset_password(req: ResetPasswordRequest) -> StatusResponse:
        service.reset_password(req.email, req.passcode, req.password)
        return StatusResponse(status="ok")

    @router.delete("/users/{user_id}", response_model=StatusResponse, responses=FORBIDDEN)
    def delete_user_data(user_id: str, request: Request) -> StatusResponse:
        """Erase auth data; only the user or a privileged caller may do this."""
        _authorize(request, user_id=user_id)
        service.delete_user_data(user_id)
        return StatusResponse(status="ok")

    @router.get("/me", response_model=AuthMeResponse, responses=UNAUTHORIZED)
    def me(request: Request) -> AuthMeResponse:
        """Return claims of the access token attached by the auth middleware."""
        claims = _current_user(request)
        return AuthMeResponse(
            user_id=claims.sub,
            roles=claims.roles,
            permissions=claims.permissions,
        )

    return router


def _current_user(request: Request) -> TokenClaims:
    claims = getattr(request.state, "user", None)
    if not isinstance(claims, TokenClaims):
        raise ApiError(
            status_code=401,
            error_code=ApiErrorCode.AUTH_MISSING_TOKEN,
            message="Missing access token",
        )
    return claims


def _authorize(request: Request, *, user_id: str | None = None) -> TokenClaims:
    """Allow privileged callers, and the user themselves when ``user_id`` is given."""
    claims = _current_user(request)
    if user_id is not None and claims.sub == user_id:
        return claims
    if PRIVILEGED_ROLES.intersection(role.upper() for role in claims.roles):
        return claims
    raise ApiError(
        status_code=403,
        error_code=ApiErrorCode.AUTH_FORBIDDEN,
        message="Not allowed to act on this user",
    )
