"""One-time numeric passcodes: issue, verify and single-use invalidation.

A user's passcode moves through ``absent -> active -> (verified | expired) -> absent``.
Issuing replaces any active code. Verification notifies the user profile service
before deleting the record, so a failed notification leaves the code usable until
it expires.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol

from auth_lifecycle.auth.errors import (
    PasscodeExpiredError,
    PasscodeMismatchError,
    PasscodeNotFoundError,
    UserServiceError,
    VerificationPropagationError,
)
from auth_lifecycle.auth.models import Passcode
from auth_lifecycle.auth.repository import PasscodeStore
from auth_lifecycle.core.config import AuthConfig
from auth_lifecycle.core.security import generate_passcode

LOGGER = logging.getLogger(__name__)


class EmailVerifiedNotifier(Protocol):
    def mark_email_verified(self, user_id: str) -> None: ...


class PasscodeManager:
    """Passcode lifecycle backed by a per-user conditional delete."""

    def __init__(
        self,
        store: PasscodeStore,
        notifier: EmailVerifiedNotifier,
        config: AuthConfig,
        *,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[int], str] = generate_passcode,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._config = config
        self._clock = clock
        self._code_factory = code_factory

    def issue(self, user_id: str) -> str:
        """Create or replace the user's passcode and return its plaintext value."""
        code = self._code_factory(self._config.passcode_length)
        expires_at = int(self._clock()) + self._config.passcode_ttl_seconds
        self._store.upsert(Passcode(user_id=user_id, passcode=code, expires_at=expires_at))
        LOGGER.info("passcode_issued", extra={"user_id": user_id})
        return code

    def verify(self, user_id: str, supplied_code: str) -> None:
        """Check the code, mark the user's email verified, then consume the code."""
        record = self._check(user_id, supplied_code)
        try:
            self._notifier.mark_email_verified(user_id)
        except UserServiceError as exc:
            LOGGER.error(
                "email_verification_propagation_failed",
                extra={"user_id": user_id, "error": str(exc)},
            )
            raise VerificationPropagationError() from exc
        self._consume(record)
        LOGGER.info("passcode_verified", extra={"user_id": user_id})

    def redeem(self, user_id: str, supplied_code: str) -> None:
        """Check and consume the code without notifying the profile service."""
        self._consume(self._check(user_id, supplied_code))
        LOGGER.info("passcode_redeemed", extra={"user_id": user_id})

    def discard(self, user_id: str) -> None:
        self._store.delete_if_matches(user_id)

    def _check(self, user_id: str, supplied_code: str) -> Passcode:
        record = self._store.get(user_id)
        if record is None:
            raise PasscodeNotFoundError()
        if int(self._clock()) >= record.expires_at:
            raise PasscodeExpiredError()
        if record.passcode != supplied_code:
            raise PasscodeMismatchError()
        return record

    def _consume(self, record: Passcode) -> None:
        # Only the caller whose delete removes this exact code reports success.
        if not self._store.delete_if_matches(record.user_id, record.passcode):
            raise PasscodeNotFoundError()
