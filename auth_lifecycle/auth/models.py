"""Pydantic models for authentication domain."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

TokenKind = Literal["access", "refresh"]


class Credential(BaseModel):
    """Persisted password credential, one per user."""

    user_id: str
    password_hash: str
    created_at: int
    updated_at: int

    def __repr__(self) -> str:
        return f"Credential(user_id={self.user_id!r})"

    __str__ = __repr__


class Passcode(BaseModel):
    """Active one-time passcode, one per user."""

    user_id: str
    passcode: str
    expires_at: int

    def __repr__(self) -> str:
        return f"Passcode(user_id={self.user_id!r}, expires_at={self.expires_at})"

    __str__ = __repr__


class RefreshTokenRecord(BaseModel):
    """Refresh token persistence record."""

    token_id: str
    user_id: str
    created_at: int
    expires_at: int


class AuthDetails(BaseModel):
    """Identity and authorization claims resolved by the user profile service."""

    user_id: str
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)


class TokenClaims(BaseModel):
    """Claims carried by a signed session token."""

    sub: str
    type: TokenKind
    roles: list[str] = Field(default_factory=list)
    permissions: list[str] = Field(default_factory=list)
    iss: str
    iat: int
    exp: int
    jti: str | None = None

    def auth_details(self) -> AuthDetails:
        return AuthDetails(user_id=self.sub, roles=self.roles, permissions=self.permissions)


class SessionTokens(BaseModel):
    """Freshly signed access and refresh token pair."""

    user_id: str
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_in: int


class SessionCookie(BaseModel):
    """Transport attributes for one session cookie."""

    name: str
    value: str
    max_age: int
    path: str
    secure: bool
    httponly: bool = True
    samesite: Literal["strict"] = "strict"


class CredentialsRequest(BaseModel):
    """Initial credentials payload for account activation."""

    user_id: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class LoginRequest(BaseModel):
    """Login request payload."""

    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class VerifyPasscodeRequest(BaseModel):
    """Passcode verification payload."""

    user_id: str = Field(min_length=1)
    passcode: str = Field(min_length=1)


class ResendPasscodeRequest(BaseModel):
    """Passcode reissue payload; the code goes to the address on file."""

    user_id: str = Field(min_length=1)


class ForgotPasswordRequest(BaseModel):
    """Forgot password payload."""

    email: str = Field(min_length=3)


class ResetPasswordRequest(BaseModel):
    """Reset password payload authorized by an emailed passcode."""

    email: str = Field(min_length=3)
    passcode: str = Field(min_length=1)
    password: str = Field(min_length=1)
