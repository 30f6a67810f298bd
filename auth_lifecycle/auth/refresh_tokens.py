"""Refresh token records and rotate-and-invalidate redemption."""

from __future__ import annotations

import logging
import time
from typing import Callable

from auth_lifecycle.auth.errors import TokenNotFoundError
from auth_lifecycle.auth.models import RefreshTokenRecord
from auth_lifecycle.auth.repository import RefreshTokenStore
from auth_lifecycle.core.config import AuthConfig
from auth_lifecycle.core.security import generate_token_id

LOGGER = logging.getLogger(__name__)


class RefreshTokenManager:
    """Creates, redeems and revokes server-side refresh token records.

    There is no token family tracking: redeeming an already rotated token
    fails for that token only and leaves the user's other sessions intact.
    """

    def __init__(
        self,
        store: RefreshTokenStore,
        config: AuthConfig,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._config = config
        self._clock = clock

    def issue(self, user_id: str) -> RefreshTokenRecord:
        now = int(self._clock())
        record = RefreshTokenRecord(
            token_id=generate_token_id(),
            user_id=user_id,
            created_at=now,
            expires_at=now + self._config.refresh_token_ttl_seconds,
        )
        self._store.put(record)
        return record

    def rotate(self, token_id: str) -> RefreshTokenRecord:
        """Consume ``token_id``; exactly one concurrent caller gets the record back."""
        record = self._store.delete_if_present(token_id)
        if record is None:
            raise TokenNotFoundError()
        if record.expires_at <= int(self._clock()):
            raise TokenNotFoundError("Refresh token expired")
        return record

    def revoke(self, token_id: str) -> None:
        self._store.delete_if_present(token_id)

    def revoke_all_for_user(self, user_id: str) -> int:
        removed = self._store.delete_all_for_user(user_id)
        LOGGER.info("refresh_tokens_revoked", extra={"user_id": user_id})
        return removed

    def purge_expired(self) -> int:
        return self._store.purge_expired(int(self._clock()))
