"""Stores for credentials, passcodes and refresh tokens.

Each store uses a MongoDB collection when one is configured and falls back to a
JSON file otherwise. Conditional deletes are the only concurrency primitive the
auth core relies on: Mongo provides them natively, the file fallback performs
each read-modify-write under a per-file lock.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Callable, TypeVar

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from auth_lifecycle.auth.models import Credential, Passcode, RefreshTokenRecord
from auth_lifecycle.core.config import StoreConfig

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
Rows = list[dict[str, Any]]


class JsonFileCollection:
    """List-of-documents JSON file with locked read-modify-write."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> Rows:
        """Read list payload from JSON file with empty fallback."""
        if not self._path.exists():
            return []
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("auth_store_file_unreadable", extra={"path": str(self._path)})
            return []
        return payload if isinstance(payload, list) else []

    def _write(self, items: Rows) -> None:
        """Persist list payload atomically via rename."""
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def rows(self) -> Rows:
        with self._lock:
            return self._read()

    def mutate(self, fn: Callable[[Rows], tuple[Rows, T]]) -> T:
        """Apply ``fn`` to current rows and persist the rows it returns."""
        with self._lock:
            next_items, result = fn(self._read())
            self._write(next_items)
            return result


class CredentialStore:
    """Hashed password credentials keyed by user id."""

    def __init__(self, *, collection: Any = None, fallback: JsonFileCollection | None = None) -> None:
        if collection is None and fallback is None:
            raise ValueError("either collection or fallback is required")
        self._mongo = collection
        self._file = fallback

    def get(self, user_id: str) -> Credential | None:
        if self._mongo is not None:
            doc = self._mongo.find_one({"user_id": user_id}, {"_id": 0})
            return Credential.model_validate(doc) if doc else None

        for row in self._file.rows():
            if row.get("user_id") == user_id:
                return Credential.model_validate(row)
        return None

    def exists(self, user_id: str) -> bool:
        if self._mongo is not None:
            return self._mongo.count_documents({"user_id": user_id}, limit=1) > 0
        return any(row.get("user_id") == user_id for row in self._file.rows())

    def put(self, credential: Credential) -> None:
        """Create or replace the credential for its user."""
        doc = credential.model_dump()
        if self._mongo is not None:
            self._mongo.replace_one({"user_id": credential.user_id}, doc, upsert=True)
            return

        def replace(items: Rows) -> tuple[Rows, None]:
            next_items = [row for row in items if row.get("user_id") != credential.user_id]
            next_items.append(doc)
            return next_items, None

        self._file.mutate(replace)

    def insert(self, credential: Credential) -> bool:
        """Store credential only when the user has none; return whether it was stored."""
        doc = credential.model_dump()
        if self._mongo is not None:
            try:
                self._mongo.insert_one(dict(doc))
            except DuplicateKeyError:
                return False
            return True

        def insert_if_absent(items: Rows) -> tuple[Rows, bool]:
            if any(row.get("user_id") == credential.user_id for row in items):
                return items, False
            return [*items, doc], True

        return self._file.mutate(insert_if_absent)

    def delete(self, user_id: str) -> bool:
        if self._mongo is not None:
            return self._mongo.delete_one({"user_id": user_id}).deleted_count == 1

        def remove(items: Rows) -> tuple[Rows, bool]:
            next_items = [row for row in items if row.get("user_id") != user_id]
            return next_items, len(next_items) != len(items)

        return self._file.mutate(remove)


class PasscodeStore:
    """At most one active passcode per user id."""

    def __init__(self, *, collection: Any = None, fallback: JsonFileCollection | None = None) -> None:
        if collection is None and fallback is None:
            raise ValueError("either collection or fallback is required")
        self._mongo = collection
        self._file = fallback

    def get(self, user_id: str) -> Passcode | None:
        if self._mongo is not None:
            doc = self._mongo.find_one({"user_id": user_id}, {"_id": 0})
            return Passcode.model_validate(doc) if doc else None

        for row in self._file.rows():
            if row.get("user_id") == user_id:
                return Passcode.model_validate(row)
        return None

    def upsert(self, passcode: Passcode) -> None:
        """Insert or replace the user's passcode."""
        doc = passcode.model_dump()
        if self._mongo is not None:
            self._mongo.replace_one({"user_id": passcode.user_id}, doc, upsert=True)
            return

        def replace(items: Rows) -> tuple[Rows, None]:
            next_items = [row for row in items if row.get("user_id") != passcode.user_id]
            next_items.append(doc)
            return next_items, None

        self._file.mutate(replace)

    def delete_if_matches(self, user_id: str, passcode: str | None = None) -> bool:
        """Delete the user's passcode, optionally only if it still holds ``passcode``.

        Returns ``True`` for exactly one caller per stored record.
        """
        query: dict[str, Any] = {"user_id": user_id}
        if passcode is not None:
            query["passcode"] = passcode

        if self._mongo is not None:
            return self._mongo.delete_one(query).deleted_count == 1

        def remove(items: Rows) -> tuple[Rows, bool]:
            next_items = [
                row
                for row in items
                if not all(row.get(key) == value for key, value in query.items())
            ]
            return next_items, len(next_items) != len(items)

        return self._file.mutate(remove)


class RefreshTokenStore:
    """Active refresh token records keyed by token id."""

    def __init__(self, *, collection: Any = None, fallback: JsonFileCollection | None = None) -> None:
        if collection is None and fallback is None:
            raise ValueError("either collection or fallback is required")
        self._mongo = collection
        self._file = fallback

    def get(self, token_id: str) -> RefreshTokenRecord | None:
        if self._mongo is not None:
            doc = self._mongo.find_one({"token_id": token_id}, {"_id": 0})
            return RefreshTokenRecord.model_validate(doc) if doc else None

        for row in self._file.rows():
            if row.get("token_id") == token_id:
                return RefreshTokenRecord.model_validate(row)
        return None

    def put(self, record: RefreshTokenRecord) -> None:
        doc = record.model_dump()
        if self._mongo is not None:
            self._mongo.replace_one({"token_id": record.token_id}, doc, upsert=True)
            return

        def replace(items: Rows) -> tuple[Rows, None]:
            next_items = [row for row in items if row.get("token_id") != record.token_id]
            next_items.append(doc)
            return next_items, None

        self._file.mutate(replace)

    def delete_if_present(self, token_id: str) -> RefreshTokenRecord | None:
        """Atomically remove a record and return it; ``None`` when already gone."""
        if self._mongo is not None:
            doc = self._mongo.find_one_and_delete({"token_id": token_id}, projection={"_id": 0})
            return RefreshTokenRecord.model_validate(doc) if doc else None

        def remove(items: Rows) -> tuple[Rows, dict[str, Any] | None]:
            removed = None
            next_items = []
            for row in items:
                if removed is None and row.get("token_id") == token_id:
                    removed = row
                    continue
                next_items.append(row)
            return next_items, removed

        row = self._file.mutate(remove)
        return RefreshTokenRecord.model_validate(row) if row else None

    def delete_all_for_user(self, user_id: str) -> int:
        if self._mongo is not None:
            return self._mongo.delete_many({"user_id": user_id}).deleted_count

        def remove(items: Rows) -> tuple[Rows, int]:
            next_items = [row for row in items if row.get("user_id") != user_id]
            return next_items, len(items) - len(next_items)

        return self._file.mutate(remove)

    def purge_expired(self, now: int) -> int:
        """Delete records whose expiry instant has passed."""
        if self._mongo is not None:
            return self._mongo.delete_many({"expires_at": {"$lte": now}}).deleted_count

        def remove(items: Rows) -> tuple[Rows, int]:
            next_items = [row for row in items if int(row.get("expires_at") or 0) > now]
            return next_items, len(items) - len(next_items)

        return self._file.mutate(remove)


class AuthRepository:
    """Auth stores with MongoDB primary and file-store fallback."""

    def __init__(self, config: StoreConfig, app_root: Path) -> None:
        """Initialize storage backends, preferring MongoDB when reachable."""
        self.backend = "file"
        db = self._connect_mongo(config)
        if db is not None:
            self.backend = "mongo"
            credentials = db["auth_credentials"]
            passcodes = db["auth_passcodes"]
            refresh_tokens = db["auth_refresh_tokens"]
            credentials.create_index("user_id", unique=True)
            passcodes.create_index("user_id", unique=True)
            refresh_tokens.create_index("token_id", unique=True)
            refresh_tokens.create_index("user_id")
            self.credentials = CredentialStore(collection=credentials)
            self.passcodes = PasscodeStore(collection=passcodes)
            self.refresh_tokens = RefreshTokenStore(collection=refresh_tokens)
            return

        store_dir = Path(config.store_dir)
        if not store_dir.is_absolute():
            store_dir = app_root / store_dir
        self.credentials = CredentialStore(
            fallback=JsonFileCollection(store_dir / "credentials.json")
        )
        self.passcodes = PasscodeStore(fallback=JsonFileCollection(store_dir / "passcodes.json"))
        self.refresh_tokens = RefreshTokenStore(
            fallback=JsonFileCollection(store_dir / "refresh_tokens.json")
        )

    @staticmethod
    def _connect_mongo(config: StoreConfig) -> Any:
        if not config.mongodb_uri:
            LOGGER.warning("MONGODB_URI is not set. Using local auth store fallback.")
            return None
        try:
            client: Any = MongoClient(config.mongodb_uri, serverSelectionTimeoutMS=3000)
            client.admin.command("ping")
        except PyMongoError:
            LOGGER.exception("MongoDB unreachable. Using local auth store fallback.")
            return None
        return client[config.mongodb_db]
