from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
import requests

from auth_lifecycle.auth.errors import UserServiceError
from auth_lifecycle.auth.user_client import UserProfileClient
from auth_lifecycle.core.config import UserServiceConfig


@dataclass
class _Response:
    status_code: int
    body: Any = None

    def json(self) -> Any:
        if isinstance(self.body, Exception):
            raise self.body
        return self.body


@dataclass
class _Session:
    responses: list[Any]
    calls: list[tuple[str, str, dict[str, Any]]] = field(default_factory=list)

    def request(self, method: str, url: str, **kwargs: Any) -> _Response:
        self.calls.append((method, url, kwargs))
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def _client(*responses: Any) -> tuple[UserProfileClient, _Session]:
    session = _Session(list(responses))
    config = UserServiceConfig(
        base_url="http://users.test/",
        timeout_seconds=2,
        notification_webhook_url="",
    )
    return UserProfileClient(config, session=session), session  # type: ignore[arg-type]


def test_get_auth_details_normalizes_email() -> None:
    client, session = _client(_Response(200, {"user_id": "U", "roles": ["USER"]}))

    details = client.get_auth_details("  A@X.io ")

    assert details is not None
    assert details.user_id == "U"
    assert details.permissions == []
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://users.test/api/users/auth-details")
    assert kwargs == {"timeout": 2, "params": {"email": "a@x.io"}}


def test_get_auth_details_unknown_email_returns_none() -> None:
    client, _ = _client(_Response(404))

    assert client.get_auth_details("ghost@x.io") is None


@pytest.mark.parametrize(
    "outcome",
    [
        _Response(500),
        _Response(200, ValueError("not json")),
        _Response(200, {"roles": []}),
        requests.ConnectionError("refused"),
    ],
)
def test_get_auth_details_failures_raise_user_service_error(outcome: Any) -> None:
    client, _ = _client(outcome)

    with pytest.raises(UserServiceError):
        client.get_auth_details("a@x.io")


def test_mark_email_verified_patches_user() -> None:
    client, session = _client(_Response(204))

    client.mark_email_verified("U")

    assert session.calls[0][:2] == ("PATCH", "http://users.test/api/users/U/verify-email")


def test_mark_email_verified_404_is_an_error() -> None:
    client, _ = _client(_Response(404))

    with pytest.raises(UserServiceError):
        client.mark_email_verified("U")


def test_get_email_reads_address_on_file() -> None:
    client, session = _client(_Response(200, {"email": " a@x.io "}))

    assert client.get_email("U") == "a@x.io"
    assert session.calls[0][:2] == ("GET", "http://users.test/api/users/U/email")


def test_get_email_unknown_user_returns_none() -> None:
    client, _ = _client(_Response(404))

    assert client.get_email("GHOST") is None


@pytest.mark.parametrize("body", [{}, {"email": ""}, ["a@x.io"], ValueError("not json")])
def test_get_email_bad_payload_is_user_service_error(body: Any) -> None:
    client, _ = _client(_Response(200, body))

    with pytest.raises(UserServiceError):
        client.get_email("U")
