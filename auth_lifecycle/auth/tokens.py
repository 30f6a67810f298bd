"""Signing and validation of access and refresh session tokens."""

from __future__ import annotations

import time
from typing import Callable, Iterable

from pydantic import ValidationError

from auth_lifecycle.auth.errors import (
    TokenExpiredError,
    TokenKindMismatchError,
    TokenSignatureError,
)
from auth_lifecycle.auth.models import AuthDetails, TokenClaims, TokenKind
from auth_lifecycle.core.config import AuthConfig
from auth_lifecycle.core.security import build_signed_token, decode_signed_token


class TokenCodec:
    """HMAC-SHA256 compact tokens signed with the process-wide secret key."""

    def __init__(self, config: AuthConfig, *, clock: Callable[[], float] = time.time) -> None:
        self._config = config
        self._clock = clock

    def sign_access_token(self, details: AuthDetails) -> str:
        """Sign a stateless access token; it carries no token identifier."""
        return self._sign(
            kind="access",
            user_id=details.user_id,
            roles=details.roles,
            permissions=details.permissions,
            ttl_seconds=self._config.access_token_ttl_seconds,
        )

    def sign_refresh_token(
        self,
        user_id: str,
        token_id: str,
        *,
        roles: Iterable[str] = (),
        permissions: Iterable[str] = (),
    ) -> str:
        """Sign a refresh token bound to the stored record ``token_id``."""
        return self._sign(
            kind="refresh",
            user_id=user_id,
            roles=roles,
            permissions=permissions,
            ttl_seconds=self._config.refresh_token_ttl_seconds,
            token_id=token_id,
        )

    def parse_and_validate(self, token: str, expected_kind: TokenKind) -> TokenClaims:
        """Return claims or raise a signature, kind or expiry error.

        Signature and structure are checked first so that a forged token is
        never reported as merely expired.
        """
        try:
            payload = decode_signed_token(token, self._config.secret_key)
            claims = TokenClaims.model_validate(payload)
        except (ValueError, ValidationError) as exc:
            raise TokenSignatureError() from exc

        if claims.iss != self._config.issuer:
            raise TokenSignatureError("Invalid token issuer")
        if claims.type != expected_kind:
            raise TokenKindMismatchError()
        if claims.type == "refresh" and not claims.jti:
            raise TokenSignatureError("Refresh token has no identifier")
        if int(self._clock()) >= claims.exp:
            raise TokenExpiredError()
        return claims

    def _sign(
        self,
        *,
        kind: TokenKind,
        user_id: str,
        roles: Iterable[str],
        permissions: Iterable[str],
        ttl_seconds: int,
        token_id: str | None = None,
    ) -> str:
        now_ts = int(self._clock())
        payload = {
            "iss": self._config.issuer,
            "sub": user_id,
            "type": kind,
            "roles": list(roles),
            "permissions": list(permissions),
            "iat": now_ts,
            "exp": now_ts + ttl_seconds,
        }
        if token_id is not None:
            payload["jti"] = token_id
        return build_signed_token(payload, self._config.secret_key)
