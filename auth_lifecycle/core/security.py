"""Security primitives for password hashing, token signing and code generation."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from functools import lru_cache
from typing import Any

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

_PASSWORD_HASHER = PasswordHasher(type=Type.ID)


def _b64url_encode(raw: bytes) -> str:
    """Return URL-safe base64 string without padding."""
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    """Decode URL-safe base64 string with optional missing padding."""
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def hash_password(password: str) -> str:
    """Hash password with argon2id; salt and parameters are encoded in the result."""
    return _PASSWORD_HASHER.hash(password)


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against an argon2 hash in constant time."""
    try:
        return _PASSWORD_HASHER.verify(stored_hash, password)
    except (VerificationError, InvalidHashError):
        return False


@lru_cache(maxsize=1)
def placeholder_password_hash() -> str:
    """Hash of a random password, verified against when no credential exists."""
    return hash_password(secrets.token_urlsafe(16))


def generate_passcode(length: int) -> str:
    """Return a zero-padded random numeric code of exactly ``length`` digits."""
    if length < 1:
        raise ValueError("passcode length must be positive")
    return str(secrets.randbelow(10**length)).zfill(length)


def generate_token_id() -> str:
    """Return an unguessable refresh token identifier."""
    return secrets.token_urlsafe(32)


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create compact signed token using JWT-like 3-part structure."""
    header = {"alg": "HS256", "typ": "JWT"}
    header_part = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_part = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    signature = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    return f"{header_part}.{payload_part}.{_b64url_encode(signature)}"


def decode_signed_token(token: str, secret_key: str) -> dict[str, Any]:
    """Verify signature and return payload, raising ``ValueError`` when malformed.

    Expiry is not checked here so callers can tell an expired token apart
    from a forged one.
    """
    parts = token.split(".")
    if len(parts) != 3 or not all(parts):
        raise ValueError("Malformed token")
    header_part, payload_part, signature_part = parts

    signing_input = f"{header_part}.{payload_part}".encode("utf-8")
    expected_sig = hmac.new(secret_key.encode("utf-8"), signing_input, hashlib.sha256).digest()
    try:
        got_sig = _b64url_decode(signature_part)
    except (ValueError, TypeError) as exc:
        raise ValueError("Malformed token signature") from exc
    if not hmac.compare_digest(expected_sig, got_sig):
        raise ValueError("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_part).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValueError("Invalid token payload") from exc
    if not isinstance(payload, dict):
        raise ValueError("Invalid token payload")
    return payload
