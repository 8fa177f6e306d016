"""
Outbound notifications.

Delivery is best-effort: a dispatcher may raise, and the negotiation
engine logs the failure without touching the committed transaction.

* :class:`WebhookNotificationDispatcher` POSTs a JSON event to a push
  gateway.
* :class:`LoggingNotificationDispatcher` is used when no gateway is
  configured.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    async def notify(
        self, user_id: int, event_type: str, payload: dict[str, Any]
    ) -> None: ...


class LoggingNotificationDispatcher:
    async def notify(
        self, user_id: int, event_type: str, payload: dict[str, Any]
    ) -> None:
        logger.info("Notify user %s: %s %s", user_id, event_type, payload)


class WebhookNotificationDispatcher:
    def __init__(self, url: str, client: httpx.AsyncClient, timeout: float = 5.0):
        self.url = url
        self.client = client
        self.timeout = timeout

    async def notify(
        self, user_id: int, event_type: str, payload: dict[str, Any]
    ) -> None:
        response = await self.client.post(
            self.url,
            json={"user_id": user_id, "type": event_type, "data": payload},
            timeout=self.timeout,
        )
        response.raise_for_status()
