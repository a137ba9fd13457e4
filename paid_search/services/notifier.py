"""
Best-effort lifecycle notifications.

Delivery runs in the background and every failure is logged and dropped,
so a broken notification channel can never change a payment or search
outcome.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

import httpx
from loguru import logger

from ..storage.history import HistoryStore

CONNECTION = "connection"
PAYMENT = "payment"
PAYMENT_CONFIRMED = "payment_confirmed"
ERROR = "error"
API_SUCCESS = "api_success"
API_ERROR = "api_error"


@dataclass(frozen=True)
class NotificationEvent:
    type: str
    message: str
    tx_hash: Optional[str] = None
    user_address: Optional[str] = None
    error_details: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "type": self.type,
            "message": self.message,
            "txHash": self.tx_hash,
            "userAddress": self.user_address,
            "errorDetails": self.error_details,
        }
        return {k: v for k, v in payload.items() if v is not None}


class HttpNotificationSink:
    """POSTs notification payloads to a webhook-style endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, payload: Dict[str, Any]) -> None:
        resp = await self.client.post(self.url, json=payload)
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self.client.aclose()


class Notifier:
    """Fire-and-forget notification emitter.

    The enabled flag lives in the history store so it survives restarts.
    """

    def __init__(self, sink, store: HistoryStore):
        self.sink = sink
        self.store = store
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.store.notifications_enabled

    def set_enabled(self, enabled: bool) -> None:
        self.store.set_notifications_enabled(enabled)

    def notify(self, event: NotificationEvent) -> None:
        """Schedule delivery of event without waiting for it.

        Outside a running event loop the event is dropped.
        """
        if not self.enabled or self.sink is None:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Notification '{event.type}' dropped: no running event loop")
            return

        task = loop.create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, event: NotificationEvent) -> None:
        try:
            await self.sink.send(event.to_payload())
        except Exception as e:
            logger.warning(f"Notification '{event.type}' not delivered: {e}")

    async def flush(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
