"""Error taxonomy for the authentication core.

Internal errors keep a precise class and an :class:`ErrorKind` so they can be
asserted on in tests and reported in logs. Only the public errors at the bottom
of this module are meant to cross the session orchestrator boundary.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Coarse category of an internal auth failure."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID = "invalid"
    CONFLICT = "conflict"
    PROPAGATION_FAILURE = "propagation_failure"


class AuthError(Exception):
    """Base class for every auth core error."""

    kind: ErrorKind = ErrorKind.INVALID
    retryable: bool = False
    default_message = "Authentication error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


# Credentials


class CredentialNotFoundError(AuthError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Credential not found"


class InvalidCredentialsError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Invalid credentials"


class DuplicateCredentialError(AuthError):
    kind = ErrorKind.CONFLICT
    default_message = "Credential already exists"


class WeakPasswordError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Password does not satisfy the password policy"


# Passcodes


class PasscodeNotFoundError(AuthError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Passcode not found"


class PasscodeExpiredError(AuthError):
    kind = ErrorKind.EXPIRED
    default_message = "Passcode has expired"


class PasscodeMismatchError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Passcode is incorrect"


class VerificationPropagationError(AuthError):
    """Raised when the email-verified notification fails; the passcode stays valid."""

    kind = ErrorKind.PROPAGATION_FAILURE
    retryable = True
    default_message = "Email verification could not be recorded, retry with the same passcode"


# Tokens


class TokenNotFoundError(AuthError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Refresh token not found"


class TokenSignatureError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Token is malformed or its signature is invalid"


class TokenExpiredError(AuthError):
    kind = ErrorKind.EXPIRED
    default_message = "Token has expired"


class TokenKindMismatchError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Token kind does not match"


# Collaborators


class UserServiceError(Exception):
    """Transport or protocol failure talking to the user profile service."""


# Public errors raised by the session orchestrator


class AuthenticationFailedError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Invalid credentials"


class SessionExpiredError(AuthError):
    kind = ErrorKind.EXPIRED
    default_message = "Session has expired, please log in again"


class TokenValidationError(AuthError):
    kind = ErrorKind.INVALID
    default_message = "Token validation failed"


class PasscodeIssuanceError(AuthError):
    """Credential was created but no passcode could be issued; request a new one."""

    kind = ErrorKind.PROPAGATION_FAILURE
    retryable = True
    default_message = "Passcode could not be issued, request a new passcode"


class PasscodeRejectedError(AuthError):
    """Missing, expired and wrong passcodes all surface as this one error."""

    kind = ErrorKind.INVALID
    default_message = "Passcode is invalid or has expired"
