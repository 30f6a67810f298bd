"""Durable notification outbox with at-least-once delivery.

Events are written to SQLite and delivered by a background worker that retries
with linear backoff and parks events in ``dead_letter`` once retries run out.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Awaitable, Callable

from auth_lifecycle.core.migrations import apply_migrations

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]

EVENT_STATUS_PENDING = "pending"
EVENT_STATUS_DELIVERING = "delivering"
EVENT_STATUS_RETRYING = "retrying"
EVENT_STATUS_DELIVERED = "delivered"
EVENT_STATUS_DEAD_LETTER = "dead_letter"
TERMINAL_EVENT_STATUSES = {EVENT_STATUS_DELIVERED, EVENT_STATUS_DEAD_LETTER}

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboxSettings:
    """Outbox runtime settings."""

    database_path: Path
    default_ttl_seconds: int = 24 * 60 * 60
    default_max_retries: int = 5
    default_retry_delay_seconds: int = 5
    worker_poll_interval_seconds: float = 0.5


class NotificationOutbox:
    """SQLite-backed event outbox that survives process restarts."""

    def __init__(self, settings: OutboxSettings) -> None:
        self._settings = settings
        apply_migrations(settings.database_path)
        self._connection = sqlite3.connect(
            str(settings.database_path),
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._lock = Lock()
        self._handler: EventHandler | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    def set_handler(self, handler: EventHandler) -> None:
        """Register the coroutine that delivers every event type."""
        self._handler = handler

    async def start(self) -> None:
        """Start background delivery loop if not already running."""
        if self._worker_task and not self._worker_task.done():
            return
        # Events claimed by a worker that died mid-delivery are handed out again.
        with self._lock:
            self._connection.execute(
                "UPDATE notification_outbox SET status = ? WHERE status = ?",
                (EVENT_STATUS_RETRYING, EVENT_STATUS_DELIVERING),
            )
            self._connection.commit()
        self._stop_event.clear()
        self._worker_task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._worker_task:
            await self._worker_task
            self._worker_task = None

    def close(self) -> None:
        with self._lock:
            self._connection.close()

    def enqueue(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str = "",
        max_retries: int | None = None,
    ) -> str:
        """Persist an event for delivery and return its id.

        An event whose ``dedupe_key`` matches a stored one is not enqueued again.
        """
        kind = event_type.strip().lower()
        if not kind:
            raise ValueError("event_type is required")
        now = int(time.time())
        retries = self._settings.default_max_retries if max_retries is None else max(0, max_retries)
        key = dedupe_key.strip() or None

        with self._lock:
            cursor = self._connection.cursor()
            self._purge_expired(cursor, now)
            if key:
                existing = cursor.execute(
                    "SELECT event_id FROM notification_outbox WHERE dedupe_key = ? LIMIT 1",
                    (key,),
                ).fetchone()
                if existing:
                    self._connection.commit()
                    return str(existing["event_id"])

            event_id = uuid.uuid4().hex
            cursor.execute(
                """
                INSERT INTO notification_outbox(
                  event_id, event_type, payload_json, status, attempts, max_retries,
                  retry_delay_seconds, available_at, created_at, updated_at, expires_at,
                  dedupe_key
                )
                VALUES (?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    event_id,
                    kind,
                    json.dumps(payload, ensure_ascii=False),
                    EVENT_STATUS_PENDING,
                    retries,
                    max(1, self._settings.default_retry_delay_seconds),
                    now,
                    now,
                    now,
                    now + self._settings.default_ttl_seconds,
                    key,
                ),
            )
            self._connection.commit()
        LOGGER.info("notification_enqueued", extra={"event_type": kind, "event_id": event_id})
        return event_id

    def get(self, event_id: str) -> dict[str, Any] | None:
        """Return delivery state for an event without its payload."""
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM notification_outbox WHERE event_id = ?",
                (event_id,),
            ).fetchone()
        if row is None:
            return None
        return {
            "event_id": str(row["event_id"]),
            "event_type": str(row["event_type"]),
            "status": str(row["status"]),
            "attempts": int(row["attempts"]),
            "max_retries": int(row["max_retries"]),
            "error": str(row["last_error"] or ""),
            "dead_letter_reason": str(row["dead_letter_reason"] or ""),
        }

    async def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            delivered = await self._deliver_next_due_event()
            if not delivered:
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self._settings.worker_poll_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue

    async def _deliver_next_due_event(self) -> bool:
        """Claim one due event and hand it to the handler."""
        now = int(time.time())
        with self._lock:
            row = self._connection.execute(
                """
                SELECT event_id, event_type, payload_json
                FROM notification_outbox
                WHERE status IN (?, ?) AND available_at <= ?
                ORDER BY available_at ASC, created_at ASC
                LIMIT 1
                """,
                (EVENT_STATUS_PENDING, EVENT_STATUS_RETRYING, now),
            ).fetchone()
            if row is None:
                return False
            self._connection.execute(
                """
                UPDATE notification_outbox
                SET status = ?, attempts = attempts + 1, updated_at = ?
                WHERE event_id = ?
                """,
                (EVENT_STATUS_DELIVERING, now, row["event_id"]),
            )
            self._connection.commit()

        event_id = str(row["event_id"])
        if self._handler is None:
            self._dead_letter(event_id, "No notification handler registered", "handler_not_found")
            return True
        try:
            payload = json.loads(str(row["payload_json"]))
        except json.JSONDecodeError:
            self._dead_letter(event_id, "Invalid payload JSON", "payload_decode_error")
            return True

        try:
            await self._handler(str(row["event_type"]), payload)
        except Exception as exc:
            self._retry_or_dead_letter(event_id, str(exc) or exc.__class__.__name__)
            return True

        with self._lock:
            self._connection.execute(
                """
                UPDATE notification_outbox
                SET status = ?, last_error = '', updated_at = ?
                WHERE event_id = ?
                """,
                (EVENT_STATUS_DELIVERED, int(time.time()), event_id),
            )
            self._connection.commit()
        return True

    def _retry_or_dead_letter(self, event_id: str, error_message: str) -> None:
        now = int(time.time())
        with self._lock:
            row = self._connection.execute(
                "SELECT attempts, max_retries, retry_delay_seconds FROM notification_outbox WHERE event_id = ?",
                (event_id,),
            ).fetchone()
            if row is None:
                return
            attempts = int(row["attempts"])
            if attempts <= int(row["max_retries"]):
                self._connection.execute(
                    """
                    UPDATE notification_outbox
                    SET status = ?, available_at = ?, updated_at = ?, last_error = ?
                    WHERE event_id = ?
                    """,
                    (
                        EVENT_STATUS_RETRYING,
                        now + int(row["retry_delay_seconds"]) * attempts,
                        now,
                        error_message,
                        event_id,
                    ),
                )
                self._connection.commit()
                return
        LOGGER.error("notification_dead_lettered", extra={"event_id": event_id, "error": error_message})
        self._dead_letter(event_id, error_message, "max_retries_exceeded")

    def _dead_letter(self, event_id: str, error_message: str, reason: str) -> None:
        with self._lock:
            self._connection.execute(
                """
                UPDATE notification_outbox
                SET status = ?, updated_at = ?, last_error = ?, dead_letter_reason = ?
                WHERE event_id = ?
                """,
                (EVENT_STATUS_DEAD_LETTER, int(time.time()), error_message, reason, event_id),
            )
            self._connection.commit()

    @staticmethod
    def _purge_expired(cursor: sqlite3.Cursor, now: int) -> None:
        """Delete expired events that reached a terminal status."""
        cursor.execute(
            "DELETE FROM notification_outbox WHERE expires_at <= ? AND status IN (?, ?)",
            (now, *sorted(TERMINAL_EVENT_STATUSES)),
        )
