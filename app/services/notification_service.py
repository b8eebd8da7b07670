"""
ShipLedger - Notification Service

Fire-and-forget push notifications to couriers.

Delivery runs as a detached asyncio task so it never sits inside a
database transaction and never affects the outcome of the operation that
triggered it. Failures are logged and dropped.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional, Set

import httpx

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushMessage:
    """A push notification addressed to one user."""
    recipient_id: uuid.UUID
    title: str
    body: str
    url: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "recipientId": str(self.recipient_id),
            "title": self.title,
            "body": self.body,
        }
        if self.url:
            payload["url"] = self.url
        return payload


class NotificationDispatcher:
    """Schedules push deliveries through the configured gateway."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def dispatch(
        self,
        recipient_id: uuid.UUID,
        title: str,
        body: str,
        url: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """
        Schedule delivery and return immediately.

        Returns:
            The delivery task, or None when no event loop is running
        """
        message = PushMessage(recipient_id=recipient_id, title=title, body=body, url=url)
        try:
            task = asyncio.get_running_loop().create_task(self._deliver(message))
        except RuntimeError:
            logger.warning(f"No running event loop; push to {recipient_id} dropped")
            return None

        # Keep a strong reference until the task finishes
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, message: PushMessage) -> bool:
        if not self.settings.push_gateway_url:
            logger.info(f"Push gateway not configured; skipped '{message.title}' to {message.recipient_id}")
            return False

        headers = {}
        if self.settings.push_gateway_token:
            headers["Authorization"] = f"Bearer {self.settings.push_gateway_token}"

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.push_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.settings.push_gateway_url,
                    json=message.to_payload(),
                    headers=headers,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Failed to deliver push notification to {message.recipient_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error delivering push notification to {message.recipient_id}: {e}")
            return False

        logger.debug(f"Delivered push notification to {message.recipient_id}")
        return True

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


@lru_cache()
def get_notification_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher used by the API layer."""
    return NotificationDispatcher()
