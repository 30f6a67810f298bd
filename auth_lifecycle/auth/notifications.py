"""Outbound account notification events and their webhook delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import requests

from auth_lifecycle.core.outbox import EventHandler

LOGGER = logging.getLogger(__name__)

EVENT_SEND_PASSCODE = "send_passcode"
EVENT_SEND_WELCOME = "send_welcome"
EVENT_RESET_PASSWORD = "reset_password"


class EventSink(Protocol):
    def enqueue(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        dedupe_key: str = "",
        max_retries: int | None = None,
    ) -> str: ...


class NotificationEmitter:
    """Enqueues account emails keyed by user id without waiting for delivery."""

    def __init__(self, sink: EventSink) -> None:
        self._sink = sink

    def send_passcode(self, user_id: str, email: str, passcode: str) -> None:
        self._sink.enqueue(
            EVENT_SEND_PASSCODE,
            {"user_id": user_id, "email": email, "passcode": passcode},
        )

    def send_welcome(self, user_id: str) -> None:
        self._sink.enqueue(
            EVENT_SEND_WELCOME,
            {"user_id": user_id},
            dedupe_key=f"{EVENT_SEND_WELCOME}:{user_id}",
        )

    def send_password_reset(self, user_id: str, email: str, passcode: str) -> None:
        self._sink.enqueue(
            EVENT_RESET_PASSWORD,
            {"user_id": user_id, "email": email, "passcode": passcode},
        )


def build_webhook_handler(url: str, *, timeout_seconds: float = 10.0) -> EventHandler:
    """Return an outbox handler that POSTs each event to ``url``.

    Without a URL events are only logged, which keeps local setups working.
    """

    def post(event_type: str, payload: dict[str, Any]) -> None:
        response = requests.post(
            url,
            json={"event_type": event_type, "payload": payload},
            timeout=timeout_seconds,
        )
        response.raise_for_status()

    async def deliver(event_type: str, payload: dict[str, Any]) -> None:
        if not url:
            LOGGER.info(
                "notification_webhook_not_configured",
                extra={"event_type": event_type, "user_id": payload.get("user_id")},
            )
            return
        await asyncio.to_thread(post, event_type, payload)

    return deliver
