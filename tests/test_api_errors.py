from __future__ import annotations

import pytest

from auth_lifecycle.api.errors import api_error_from_auth_error, to_error_payload
from auth_lifecycle.auth.errors import (
    AuthenticationFailedError,
    DuplicateCredentialError,
    PasscodeIssuanceError,
    PasscodeRejectedError,
    SessionExpiredError,
    TokenKindMismatchError,
    TokenSignatureError,
)


def test_to_error_payload_preserves_structured_detail() -> None:
    payload = to_error_payload(
        {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"},
        401,
    )

    assert payload == {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid"}


def test_to_error_payload_normalizes_plain_string() -> None:
    payload = to_error_payload("boom", 500)

    assert payload == {"error_code": "HTTP_500", "message": "boom"}


@pytest.mark.parametrize(
    ("error", "status_code", "error_code"),
    [
        (AuthenticationFailedError(), 401, "AUTH_INVALID_CREDENTIALS"),
        (SessionExpiredError(), 401, "AUTH_SESSION_EXPIRED"),
        (DuplicateCredentialError(), 409, "CREDENTIALS_EXIST"),
        (PasscodeRejectedError(), 400, "PASSCODE_INVALID"),
        (PasscodeIssuanceError(), 503, "PASSCODE_ISSUANCE_FAILED"),
    ],
)
def test_api_error_from_auth_error_maps_known_errors(error, status_code: int, error_code: str) -> None:
    api_error = api_error_from_auth_error(error)

    assert api_error.status_code == status_code
    assert api_error.detail["error_code"] == error_code


def test_api_error_from_auth_error_hides_unlisted_token_errors() -> None:
    signature = api_error_from_auth_error(TokenSignatureError())
    kind = api_error_from_auth_error(TokenKindMismatchError())

    assert signature.status_code == kind.status_code == 401
    assert signature.detail["error_code"] == kind.detail["error_code"] == "AUTH_TOKEN_INVALID"
