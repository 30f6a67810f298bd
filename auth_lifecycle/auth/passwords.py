"""Password credential creation, verification and reset."""

from __future__ import annotations

import logging
import time
from typing import Callable

from auth_lifecycle.auth.errors import (
    CredentialNotFoundError,
    DuplicateCredentialError,
    InvalidCredentialsError,
    WeakPasswordError,
)
from auth_lifecycle.auth.models import Credential
from auth_lifecycle.auth.repository import CredentialStore
from auth_lifecycle.core.security import hash_password, placeholder_password_hash, verify_password

LOGGER = logging.getLogger(__name__)

PasswordPolicy = Callable[[str], bool]


def accept_any_password(password: str) -> bool:
    return bool(password)


class PasswordManager:
    """Owns argon2 hashing and the single credential stored per user."""

    def __init__(
        self,
        store: CredentialStore,
        *,
        password_policy: PasswordPolicy = accept_any_password,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._policy = password_policy
        self._clock = clock

    def create_credential(self, user_id: str, password: str) -> None:
        """Hash and store the first credential for ``user_id``."""
        self.check_policy(password)
        if self._store.exists(user_id):
            raise DuplicateCredentialError()

        now = int(self._clock())
        credential = Credential(
            user_id=user_id,
            password_hash=hash_password(password),
            created_at=now,
            updated_at=now,
        )
        # insert() re-checks under the store's own atomicity for concurrent creators.
        if not self._store.insert(credential):
            raise DuplicateCredentialError()
        LOGGER.info("credential_created", extra={"user_id": user_id})

    def verify(self, user_id: str, password: str) -> None:
        """Return on match; raise ``CredentialNotFoundError`` or ``InvalidCredentialsError``."""
        credential = self._store.get(user_id)
        if credential is None:
            self.spend_verification_time(password)
            raise CredentialNotFoundError()
        if not verify_password(password, credential.password_hash):
            raise InvalidCredentialsError()

    def reset_credential(self, user_id: str, new_password: str) -> None:
        """Replace the stored hash without checking the previous password."""
        self.check_policy(new_password)
        now = int(self._clock())
        existing = self._store.get(user_id)
        self._store.put(
            Credential(
                user_id=user_id,
                password_hash=hash_password(new_password),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
        )
        LOGGER.info("credential_reset", extra={"user_id": user_id})

    def delete_credential(self, user_id: str) -> None:
        self._store.delete(user_id)

    def check_policy(self, password: str) -> None:
        """Raise ``WeakPasswordError`` when ``password`` fails the configured policy."""
        if not self._policy(password):
            raise WeakPasswordError()

    def spend_verification_time(self, password: str) -> None:
        """Run one argon2 verification that always fails.

        Keeps a lookup for an unknown user as slow as a wrong password.
        """
        verify_password(password, placeholder_password_hash())
