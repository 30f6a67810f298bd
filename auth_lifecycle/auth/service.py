"""Session orchestration for login, refresh, logout and account activation."""

from __future__ import annotations

import logging

from auth_lifecycle.auth.errors import (
    AuthError,
    AuthenticationFailedError,
    CredentialNotFoundError,
    InvalidCredentialsError,
    PasscodeExpiredError,
    PasscodeIssuanceError,
    PasscodeMismatchError,
    PasscodeNotFoundError,
    PasscodeRejectedError,
    SessionExpiredError,
    TokenExpiredError,
    TokenKindMismatchError,
    TokenNotFoundError,
    TokenSignatureError,
    TokenValidationError,
)
from auth_lifecycle.auth.models import AuthDetails, SessionCookie, SessionTokens, TokenClaims
from auth_lifecycle.auth.notifications import NotificationEmitter
from auth_lifecycle.auth.passcodes import PasscodeManager
from auth_lifecycle.auth.passwords import PasswordManager
from auth_lifecycle.auth.refresh_tokens import RefreshTokenManager
from auth_lifecycle.auth.tokens import TokenCodec
from auth_lifecycle.auth.user_client import UserProfileClient
from auth_lifecycle.core.config import AuthConfig

LOGGER = logging.getLogger(__name__)

ErrorTable = dict[type[AuthError], type[AuthError]]

# Internal failures are collapsed per flow so callers cannot tell which check failed.
LOGIN_ERRORS: ErrorTable = {
    CredentialNotFoundError: AuthenticationFailedError,
    InvalidCredentialsError: AuthenticationFailedError,
}
REFRESH_TOKEN_ERRORS: ErrorTable = {
    TokenSignatureError: TokenValidationError,
    TokenKindMismatchError: TokenValidationError,
    TokenExpiredError: TokenValidationError,
}
ROTATION_ERRORS: ErrorTable = {
    TokenNotFoundError: SessionExpiredError,
}
VERIFY_PASSCODE_ERRORS: ErrorTable = {
    PasscodeNotFoundError: PasscodeRejectedError,
    PasscodeExpiredError: PasscodeRejectedError,
    PasscodeMismatchError: PasscodeRejectedError,
}
PASSWORD_RESET_ERRORS: ErrorTable = {
    PasscodeNotFoundError: AuthenticationFailedError,
    PasscodeExpiredError: AuthenticationFailedError,
    PasscodeMismatchError: AuthenticationFailedError,
}


class SessionOrchestrator:
    """Stateless composition of the credential, passcode and token managers."""

    def __init__(
        self,
        *,
        passwords: PasswordManager,
        passcodes: PasscodeManager,
        refresh_tokens: RefreshTokenManager,
        codec: TokenCodec,
        users: UserProfileClient,
        notifications: NotificationEmitter,
        config: AuthConfig,
    ) -> None:
        self._passwords = passwords
        self._passcodes = passcodes
        self._refresh_tokens = refresh_tokens
        self._codec = codec
        self._users = users
        self._notifications = notifications
        self._config = config

    def login(self, email: str, password: str) -> SessionTokens:
        """Verify the password for ``email`` and issue a new token pair."""
        details = self._users.get_auth_details(email)
        if details is None:
            self._passwords.spend_verification_time(password)
            LOGGER.warning("login_failed", extra={"error_kind": "unknown_email"})
            raise AuthenticationFailedError()
        try:
            self._passwords.verify(details.user_id, password)
        except (CredentialNotFoundError, InvalidCredentialsError) as exc:
            raise self._collapse(exc, LOGIN_ERRORS, "login", details.user_id) from exc
        LOGGER.info("login_succeeded", extra={"user_id": details.user_id})
        return self._issue_session(details)

    def refresh(self, refresh_token: str | None) -> SessionTokens:
        """Redeem a refresh token once and issue a replacement pair."""
        if not refresh_token:
            raise SessionExpiredError()
        try:
            claims = self._codec.parse_and_validate(refresh_token, "refresh")
        except (TokenSignatureError, TokenKindMismatchError, TokenExpiredError) as exc:
            raise self._collapse(exc, REFRESH_TOKEN_ERRORS, "refresh") from exc

        try:
            record = self._refresh_tokens.rotate(str(claims.jti))
        except TokenNotFoundError as exc:
            raise self._collapse(exc, ROTATION_ERRORS, "refresh", claims.sub) from exc
        if record.user_id != claims.sub:
            LOGGER.error("refresh_token_subject_mismatch", extra={"user_id": claims.sub})
            raise SessionExpiredError()

        return self._issue_session(claims.auth_details())

    def logout(self, refresh_token: str | None) -> None:
        """Revoke the refresh token when it can be identified; never fails."""
        if not refresh_token:
            return
        try:
            claims = self._codec.parse_and_validate(refresh_token, "refresh")
        except AuthError:
            return
        self._refresh_tokens.revoke(str(claims.jti))
        LOGGER.info("logout", extra={"user_id": claims.sub})

    def create_credentials_and_issue_passcode(self, user_id: str, email: str, password: str) -> None:
        """Store initial credentials, then email a verification passcode.

        The credential is kept when passcode issuance fails; the caller may ask
        for a new passcode with :meth:`resend_passcode`.
        """
        self._passwords.create_credential(user_id, password)
        self._issue_and_send_passcode(user_id, email)

    def resend_passcode(self, user_id: str) -> None:
        """Replace the active passcode and email it to the address on file."""
        email = self._users.get_email(user_id)
        if email is None:
            LOGGER.info("passcode_resend_unknown_user", extra={"user_id": user_id})
            return
        self._issue_and_send_passcode(user_id, email)

    def verify_passcode(self, user_id: str, passcode: str) -> None:
        """Verify the user's email passcode and queue the welcome email."""
        try:
            self._passcodes.verify(user_id, passcode)
        except (PasscodeNotFoundError, PasscodeExpiredError, PasscodeMismatchError) as exc:
            raise self._collapse(exc, VERIFY_PASSCODE_ERRORS, "verify_passcode", user_id) from exc
        try:
            self._notifications.send_welcome(user_id)
        except Exception:
            LOGGER.exception("welcome_notification_failed", extra={"user_id": user_id})

    def forgot_password(self, email: str) -> None:
        """Email a reset passcode when ``email`` belongs to a user; silent otherwise."""
        details = self._users.get_auth_details(email)
        if details is None:
            LOGGER.info("password_reset_unknown_email")
            return
        code = self._passcodes.issue(details.user_id)
        self._notifications.send_password_reset(details.user_id, email, code)

    def reset_password(self, email: str, passcode: str, new_password: str) -> None:
        """Replace the password after redeeming an emailed passcode.

        A password that fails the policy raises ``WeakPasswordError`` before the
        passcode is spent. Every refresh token of the user is revoked afterwards.
        """
        details = self._users.get_auth_details(email)
        if details is None:
            raise AuthenticationFailedError()
        self._passwords.check_policy(new_password)
        try:
            self._passcodes.redeem(details.user_id, passcode)
        except (PasscodeNotFoundError, PasscodeExpiredError, PasscodeMismatchError) as exc:
            raise self._collapse(exc, PASSWORD_RESET_ERRORS, "reset_password", details.user_id) from exc
        self._passwords.reset_credential(details.user_id, new_password)
        self._refresh_tokens.revoke_all_for_user(details.user_id)

    def delete_user_data(self, user_id: str) -> None:
        """Erase credential, passcode and refresh tokens of a deleted account."""
        self._passwords.delete_credential(user_id)
        self._passcodes.discard(user_id)
        self._refresh_tokens.revoke_all_for_user(user_id)
        LOGGER.info("user_auth_data_deleted", extra={"user_id": user_id})

    def verify_access_token(self, token: str) -> TokenClaims:
        """Validate an access token; errors keep their precise kind."""
        return self._codec.parse_and_validate(token, "access")

    def purge_expired_refresh_tokens(self) -> int:
        return self._refresh_tokens.purge_expired()

    def session_cookies(self, tokens: SessionTokens) -> list[SessionCookie]:
        return [
            self._cookie(
                self._config.access_cookie_name,
                tokens.access_token,
                tokens.access_expires_in,
                self._config.access_cookie_path,
            ),
            self._cookie(
                self._config.refresh_cookie_name,
                tokens.refresh_token,
                tokens.refresh_expires_in,
                self._config.refresh_cookie_path,
            ),
        ]

    def cleared_cookies(self) -> list[SessionCookie]:
        """Return expired, empty cookies that remove both tokens from the client."""
        return [
            self._cookie(self._config.access_cookie_name, "", 0, self._config.access_cookie_path),
            self._cookie(self._config.refresh_cookie_name, "", 0, self._config.refresh_cookie_path),
        ]

    def _cookie(self, name: str, value: str, max_age: int, path: str) -> SessionCookie:
        return SessionCookie(
            name=name,
            value=value,
            max_age=max_age,
            path=path,
            secure=self._config.secure_cookies,
        )

    def _issue_session(self, details: AuthDetails) -> SessionTokens:
        record = self._refresh_tokens.issue(details.user_id)
        return SessionTokens(
            user_id=details.user_id,
            access_token=self._codec.sign_access_token(details),
            refresh_token=self._codec.sign_refresh_token(
                details.user_id,
                record.token_id,
                roles=details.roles,
                permissions=details.permissions,
            ),
            access_expires_in=self._config.access_token_ttl_seconds,
            refresh_expires_in=self._config.refresh_token_ttl_seconds,
        )

    def _issue_and_send_passcode(self, user_id: str, email: str) -> None:
        try:
            code = self._passcodes.issue(user_id)
            self._notifications.send_passcode(user_id, email, code)
        except Exception as exc:
            LOGGER.exception("passcode_issuance_failed", extra={"user_id": user_id})
            raise PasscodeIssuanceError() from exc

    @staticmethod
    def _collapse(
        exc: AuthError, table: ErrorTable, flow: str, user_id: str | None = None
    ) -> AuthError:
        LOGGER.warning(
            f"{flow}_failed",
            extra={
                "user_id": user_id,
                "error_kind": str(exc.kind),
                "error": exc.__class__.__name__,
            },
        )
        return table[type(exc)]()
