"""HTTP client for the remote user profile service."""

from __future__ import annotations

import logging
from typing import Any

import requests

from auth_lifecycle.auth.errors import UserServiceError
from auth_lifecycle.auth.models import AuthDetails
from auth_lifecycle.core.config import UserServiceConfig

LOGGER = logging.getLogger(__name__)


class UserProfileClient:
    """Resolves login identities and records email verification."""

    def __init__(self, config: UserServiceConfig, session: requests.Session | None = None) -> None:
        self._base_url = config.base_url.rstrip("/")
        self._timeout = config.timeout_seconds
        self._session = session or requests.Session()

    def get_auth_details(self, email: str) -> AuthDetails | None:
        """Return user id and claims for ``email``; ``None`` when no such user."""
        response = self._request(
            "GET",
            "/api/users/auth-details",
            params={"email": email.strip().lower()},
        )
        if response.status_code == 404:
            return None
        try:
            payload: Any = response.json()
            return AuthDetails.model_validate(payload)
        except ValueError as exc:
            raise UserServiceError("Invalid auth details payload") from exc

    def get_email(self, user_id: str) -> str | None:
        """Return the address on file for ``user_id``; ``None`` when no such user."""
        response = self._request("GET", f"/api/users/{user_id}/email")
        if response.status_code == 404:
            return None
        try:
            email = response.json()["email"]
        except (ValueError, KeyError, TypeError) as exc:
            raise UserServiceError("Invalid email payload") from exc
        if not isinstance(email, str) or not email.strip():
            raise UserServiceError("Invalid email payload")
        return email.strip()

    def mark_email_verified(self, user_id: str) -> None:
        self._request("PATCH", f"/api/users/{user_id}/verify-email")

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            LOGGER.warning("user_service_unreachable", extra={"path": path, "method": method})
            raise UserServiceError(str(exc) or exc.__class__.__name__) from exc

        if response.status_code == 404 and method == "GET":
            return response
        if response.status_code >= 400:
            LOGGER.warning(
                "user_service_error",
                extra={"path": path, "method": method, "status_code": response.status_code},
            )
            raise UserServiceError(f"User service returned HTTP {response.status_code}")
        return response
