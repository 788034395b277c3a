"""Serverless event relay adapter (Inngest Event API over httpx)."""

import logging
import time
from collections.abc import Sequence
from typing import Any

import httpx

from ..config import DEFAULT_INNGEST_BASE_URL
from ..errors import QueueBackendUnavailable
from .types import JobOptions, QueueEvent, QueueEventName, QueueStats

logger = logging.getLogger(__name__)

RELAY_EVENT_NAMES: dict[QueueEventName, str] = {
    QueueEventName.CONTEXT_GENERATE: "github/submission.received",
    QueueEventName.REVIEW_SINGLE: "github/submission.received",
    QueueEventName.REVIEW_BATCH: "github/batch.review",
    QueueEventName.REVIEW_COMPLETED: "github/review.completed",
}

# Reverse lookup used when the relay calls back with its own event names.
LOCAL_EVENT_NAMES: dict[str, QueueEventName] = {
    "github/submission.received": QueueEventName.CONTEXT_GENERATE,
    "github/batch.review": QueueEventName.REVIEW_BATCH,
    "github/review.completed": QueueEventName.REVIEW_COMPLETED,
}


def relay_event_name(name: QueueEventName) -> str:
    return RELAY_EVENT_NAMES.get(name, name.value)


class EventRelayAdapter:
    """
    Queue adapter that hands events to a hosted event relay.

    The relay owns scheduling and retries, so there is no local queue:
    stats are always zero and the adapter always reports connected.
    Job options are accepted for interface compatibility and ignored.
    """

    name = "Inngest"

    def __init__(
        self,
        event_key: str = "",
        base_url: str = DEFAULT_INNGEST_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._event_key = event_key
        self._base_url = base_url.rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    @property
    def event_url(self) -> str:
        return f"{self._base_url}/e/{self._event_key or 'NO_EVENT_KEY_SET'}"

    async def send(self, event: QueueEvent, options: JobOptions | None = None) -> str:
        payload: dict[str, Any] = {
            "name": relay_event_name(event.name),
            "data": event.data,
            "ts": int(event.timestamp.timestamp() * 1000),
        }

        should_close_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout)

        try:
            response = await client.post(self.event_url, json=payload)
            response.raise_for_status()
            body = response.json() if response.content else {}
        except httpx.HTTPError as e:
            raise QueueBackendUnavailable(
                f"Failed to send {payload['name']} to event relay: {e}", self.name
            ) from e
        finally:
            if should_close_client:
                await client.aclose()

        ids = body.get("ids") if isinstance(body, dict) else None
        job_id = str(ids[0]) if ids else f"relay-{int(time.time() * 1000)}"
        logger.info(f"Event sent: {event.name.value} -> {payload['name']} ({job_id})")
        return job_id

    async def send_batch(
        self, events: Sequence[QueueEvent], options: JobOptions | None = None
    ) -> list[str]:
        return [await self.send(event, options) for event in events]

    async def is_connected(self) -> bool:
        return True

    async def get_queue_stats(self) -> QueueStats:
        return QueueStats()

    async def close(self) -> None:
        return None
