from __future__ import annotations

import threading
from pathlib import Path

import pytest

from auth_lifecycle.auth import passwords as passwords_module
from auth_lifecycle.auth.errors import (
    AuthenticationFailedError,
    DuplicateCredentialError,
    PasscodeIssuanceError,
    PasscodeRejectedError,
    SessionExpiredError,
    TokenExpiredError,
    TokenKindMismatchError,
    TokenValidationError,
    VerificationPropagationError,
    WeakPasswordError,
)
from auth_lifecycle.auth.notifications import (
    EVENT_RESET_PASSWORD,
    EVENT_SEND_PASSCODE,
    EVENT_SEND_WELCOME,
)
from tests.fakes import build_harness


def test_login_issues_token_pair_with_profile_claims(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1", roles=["USER", "ADMIN"])

    session = harness.service.login("a@x.io", "P@ss1")

    access = harness.codec.parse_and_validate(session.access_token, "access")
    refresh = harness.codec.parse_and_validate(session.refresh_token, "refresh")
    assert session.user_id == "U"
    assert access.sub == "U"
    assert access.roles == ["USER", "ADMIN"]
    assert harness.refresh_store.get(str(refresh.jti)).user_id == "U"
    assert session.access_expires_in == 900
    assert session.refresh_expires_in == 7 * 24 * 3600


def test_login_wrong_password_and_unknown_email_look_identical(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    harness.add_user("nocred@x.io", "V")

    with pytest.raises(AuthenticationFailedError) as wrong:
        harness.service.login("a@x.io", "wrong")
    with pytest.raises(AuthenticationFailedError) as unknown:
        harness.service.login("ghost@x.io", "P@ss1")
    with pytest.raises(AuthenticationFailedError) as missing:
        harness.service.login("nocred@x.io", "P@ss1")

    assert str(wrong.value) == str(unknown.value) == str(missing.value)
    assert harness.refresh_store.delete_all_for_user("U") == 0


def test_refresh_rotates_and_rejects_reuse(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    first = harness.service.login("a@x.io", "P@ss1")

    second = harness.service.refresh(first.refresh_token)

    assert second.refresh_token != first.refresh_token
    with pytest.raises(SessionExpiredError):
        harness.service.refresh(first.refresh_token)
    third = harness.service.refresh(second.refresh_token)
    assert third.user_id == "U"


def test_refresh_keeps_claims_without_profile_lookup(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1", roles=["ADMIN"])
    session = harness.service.login("a@x.io", "P@ss1")
    harness.users.users.clear()

    renewed = harness.service.refresh(session.refresh_token)

    assert harness.codec.parse_and_validate(renewed.access_token, "access").roles == ["ADMIN"]


def test_refresh_without_token_is_session_expired(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    with pytest.raises(SessionExpiredError):
        harness.service.refresh(None)
    with pytest.raises(SessionExpiredError):
        harness.service.refresh("")


@pytest.mark.parametrize("token", ["garbage", "a.b.c"])
def test_refresh_with_malformed_token_is_validation_error(tmp_path: Path, token: str) -> None:
    harness = build_harness(tmp_path)

    with pytest.raises(TokenValidationError):
        harness.service.refresh(token)


def test_refresh_with_access_token_is_validation_error(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")

    with pytest.raises(TokenValidationError):
        harness.service.refresh(session.access_token)


def test_refresh_after_token_expiry_is_validation_error(tmp_path: Path) -> None:
    harness = build_harness(tmp_path, refresh_token_ttl_seconds=60)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")

    harness.clock.advance(60)

    with pytest.raises(TokenValidationError):
        harness.service.refresh(session.refresh_token)


def test_concurrent_refresh_has_single_winner(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")
    workers = 6
    barrier = threading.Barrier(workers)
    outcomes: list[str] = []
    lock = threading.Lock()

    def attempt() -> None:
        barrier.wait()
        try:
            harness.service.refresh(session.refresh_token)
            result = "ok"
        except SessionExpiredError:
            result = "expired"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("expired") == workers - 1


def test_logout_revokes_refresh_token_and_never_fails(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")

    harness.service.logout(session.refresh_token)
    harness.service.logout(session.refresh_token)
    harness.service.logout("garbage")
    harness.service.logout(None)

    with pytest.raises(SessionExpiredError):
        harness.service.refresh(session.refresh_token)


def test_create_credentials_enqueues_passcode_event(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")

    [event] = harness.sink.of_type(EVENT_SEND_PASSCODE)
    assert event["user_id"] == "U"
    assert event["email"] == "a@x.io"
    assert event["passcode"] == harness.passcode_store.get("U").passcode
    harness.passwords.verify("U", "P@ss1")


def test_create_credentials_twice_is_duplicate(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")

    with pytest.raises(DuplicateCredentialError):
        harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "Other1")

    assert len(harness.sink.of_type(EVENT_SEND_PASSCODE)) == 1


def test_passcode_issuance_failure_keeps_credential(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U")
    harness.sink.fail = True

    with pytest.raises(PasscodeIssuanceError) as exc:
        harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")

    assert exc.value.retryable is True
    assert harness.credential_store.exists("U")

    harness.sink.fail = False
    harness.service.resend_passcode("U")
    assert len(harness.sink.of_type(EVENT_SEND_PASSCODE)) == 1


def test_verify_passcode_marks_email_and_sends_welcome(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")
    code = harness.sink.of_type(EVENT_SEND_PASSCODE)[0]["passcode"]

    harness.service.verify_passcode("U", code)

    assert harness.users.verified == ["U"]
    assert harness.sink.of_type(EVENT_SEND_WELCOME) == [{"user_id": "U"}]
    assert harness.passcode_store.get("U") is None


def test_verify_passcode_failures_look_identical(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")
    code = harness.sink.of_type(EVENT_SEND_PASSCODE)[0]["passcode"]
    wrong = "0" * 6 if code != "0" * 6 else "1" * 6

    with pytest.raises(PasscodeRejectedError) as mismatch:
        harness.service.verify_passcode("U", wrong)
    with pytest.raises(PasscodeRejectedError) as missing:
        harness.service.verify_passcode("NOBODY", code)
    harness.clock.advance(900)
    with pytest.raises(PasscodeRejectedError) as expired:
        harness.service.verify_passcode("U", code)

    assert str(mismatch.value) == str(missing.value) == str(expired.value)
    assert harness.users.verified == []


def test_verify_passcode_propagation_failure_is_retryable(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")
    code = harness.sink.of_type(EVENT_SEND_PASSCODE)[0]["passcode"]
    harness.users.fail_mark_verified = True

    with pytest.raises(VerificationPropagationError):
        harness.service.verify_passcode("U", code)
    assert harness.sink.of_type(EVENT_SEND_WELCOME) == []

    harness.users.fail_mark_verified = False
    harness.service.verify_passcode("U", code)
    assert harness.users.verified == ["U"]


def test_resend_passcode_goes_to_address_on_file(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("victim@x.io", "VICTIM")

    harness.service.resend_passcode("VICTIM")

    [event] = harness.sink.of_type(EVENT_SEND_PASSCODE)
    assert event["email"] == "victim@x.io"
    assert event["passcode"] == harness.passcode_store.get("VICTIM").passcode


def test_resend_passcode_for_unknown_user_sends_nothing(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    harness.service.resend_passcode("GHOST")

    assert harness.sink.events == []
    assert harness.passcode_store.get("GHOST") is None

def test_welcome_failure_does_not_fail_verification(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.service.create_credentials_and_issue_passcode("U", "a@x.io", "P@ss1")
    code = harness.sink.of_type(EVENT_SEND_PASSCODE)[0]["passcode"]
    harness.sink.fail = True

    harness.service.verify_passcode("U", code)

    assert harness.users.verified == ["U"]


def test_forgot_password_is_silent_for_unknown_email(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    harness.service.forgot_password("ghost@x.io")

    assert harness.sink.events == []


def test_reset_password_replaces_credential_and_revokes_sessions(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")

    harness.service.forgot_password("a@x.io")
    [event] = harness.sink.of_type(EVENT_RESET_PASSWORD)
    harness.service.reset_password("a@x.io", event["passcode"], "N3w!pass")

    assert harness.users.verified == []
    with pytest.raises(SessionExpiredError):
        harness.service.refresh(session.refresh_token)
    with pytest.raises(AuthenticationFailedError):
        harness.service.login("a@x.io", "P@ss1")
    assert harness.service.login("a@x.io", "N3w!pass").user_id == "U"


def test_reset_password_with_bad_passcode_fails_generically(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")

    with pytest.raises(AuthenticationFailedError):
        harness.service.reset_password("a@x.io", "123456", "N3w!pass")
    with pytest.raises(AuthenticationFailedError):
        harness.service.reset_password("ghost@x.io", "123456", "N3w!pass")

    harness.passwords.verify("U", "P@ss1")


def test_delete_user_data_removes_everything(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")
    harness.service.resend_passcode("U")

    harness.service.delete_user_data("U")

    assert harness.credential_store.get("U") is None
    assert harness.passcode_store.get("U") is None
    with pytest.raises(SessionExpiredError):
        harness.service.refresh(session.refresh_token)


def test_verify_access_token_keeps_precise_errors(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")

    assert harness.service.verify_access_token(session.access_token).sub == "U"
    with pytest.raises(TokenKindMismatchError):
        harness.service.verify_access_token(session.refresh_token)

    harness.clock.advance(900)
    with pytest.raises(TokenExpiredError):
        harness.service.verify_access_token(session.access_token)


def test_purge_expired_refresh_tokens(tmp_path: Path) -> None:
    harness = build_harness(tmp_path, refresh_token_ttl_seconds=60)
    harness.add_user("a@x.io", "U", password="P@ss1")
    harness.service.login("a@x.io", "P@ss1")
    harness.service.login("a@x.io", "P@ss1")

    harness.clock.advance(60)

    assert harness.service.purge_expired_refresh_tokens() == 2


def test_session_cookies_attributes(tmp_path: Path) -> None:
    harness = build_harness(tmp_path, secure_cookies=True)
    harness.add_user("a@x.io", "U", password="P@ss1")
    session = harness.service.login("a@x.io", "P@ss1")

    access, refresh = harness.service.session_cookies(session)

    assert (access.name, access.value, access.max_age, access.path) == (
        "vsp_access",
        session.access_token,
        900,
        "/",
    )
    assert (refresh.name, refresh.path) == ("vsp_refresh", "/api/auth")
    assert all(cookie.httponly and cookie.secure for cookie in (access, refresh))
    assert {cookie.samesite for cookie in (access, refresh)} == {"strict"}

    cleared = harness.service.cleared_cookies()
    assert [(cookie.value, cookie.max_age) for cookie in cleared] == [("", 0), ("", 0)]


def test_reset_password_rejects_weak_password_before_spending_passcode(tmp_path: Path) -> None:
    harness = build_harness(tmp_path, password_policy=lambda password: len(password) >= 8)
    harness.add_user("a@x.io", "U", password="P@ssword1")
    harness.service.forgot_password("a@x.io")
    [event] = harness.sink.of_type(EVENT_RESET_PASSWORD)

    with pytest.raises(WeakPasswordError):
        harness.service.reset_password("a@x.io", event["passcode"], "short")
    assert harness.passcode_store.get("U").passcode == event["passcode"]

    harness.service.reset_password("a@x.io", event["passcode"], "LongEnough1!")
    assert harness.service.login("a@x.io", "LongEnough1!").user_id == "U"


def test_login_for_unknown_email_still_verifies_a_hash(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    harness = build_harness(tmp_path)
    calls: list[str] = []

    def counting_verify(password: str, stored_hash: str) -> bool:
        calls.append(stored_hash)
        return False

    monkeypatch.setattr(passwords_module, "verify_password", counting_verify)

    with pytest.raises(AuthenticationFailedError):
        harness.service.login("ghost@x.io", "P@ss1")

    assert len(calls) == 1
