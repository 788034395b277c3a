"""Backend selection and the dispatcher used by the rest of the app."""

import logging
from typing import Any

import httpx

from ..config import Settings
from .broker import BullMQAdapter
from .relay import EventRelayAdapter
from .types import (
    BatchReviewEvent,
    ContextGenerateEvent,
    JobOptions,
    QueueAdapter,
    QueueEvent,
    QueueEventName,
    ReviewCompletedEvent,
)

logger = logging.getLogger(__name__)


def create_queue_adapter(
    settings: Settings, http_client: httpx.AsyncClient | None = None
) -> QueueAdapter:
    """
    Build the queue backend for this process.

    BullMQ is used only when ``USE_BULLMQ=true`` and ``REDIS_URL`` is set;
    otherwise events go through the hosted relay. Call once at startup and
    pass the adapter to whatever needs it.
    """
    if settings.broker_enabled:
        logger.info("Using BullMQ adapter")
        return BullMQAdapter(settings.redis_url)

    logger.info("Using Inngest adapter")
    return EventRelayAdapter(
        event_key=settings.inngest_event_key,
        base_url=settings.inngest_base_url,
        http_client=http_client,
    )


def get_queue_config(settings: Settings) -> dict[str, bool]:
    """Which backends are configured, for debugging."""
    return {
        "use_bullmq": settings.broker_enabled,
        "redis_configured": bool(settings.redis_url),
        "inngest_configured": bool(settings.inngest_event_key),
    }


class QueueDispatcher:
    """Typed helpers over a queue adapter."""

    def __init__(self, adapter: QueueAdapter) -> None:
        self._adapter = adapter

    @property
    def adapter(self) -> QueueAdapter:
        return self._adapter

    async def send_submission_for_review(
        self, data: ContextGenerateEvent, options: JobOptions | None = None
    ) -> str:
        return await self._adapter.send(
            QueueEvent(name=QueueEventName.CONTEXT_GENERATE, data=data.to_dict()),
            options,
        )

    async def send_submissions_for_review(
        self, items: list[ContextGenerateEvent], options: JobOptions | None = None
    ) -> list[str]:
        events = [
            QueueEvent(name=QueueEventName.CONTEXT_GENERATE, data=item.to_dict())
            for item in items
        ]
        return await self._adapter.send_batch(events, options)

    async def trigger_batch_review(
        self, data: BatchReviewEvent, options: JobOptions | None = None
    ) -> str:
        return await self._adapter.send(
            QueueEvent(name=QueueEventName.REVIEW_BATCH, data=data.to_dict()),
            options,
        )

    async def notify_review_completed(
        self, data: ReviewCompletedEvent, options: JobOptions | None = None
    ) -> str:
        return await self._adapter.send(
            QueueEvent(name=QueueEventName.REVIEW_COMPLETED, data=data.to_dict()),
            options,
        )

    async def get_stats(self) -> dict[str, Any]:
        stats = await self._adapter.get_queue_stats()
        return {"adapter": self._adapter.name, "stats": stats.to_dict()}

    async def health_check(self) -> dict[str, Any]:
        """Report backend health. Never raises."""
        try:
            connected = await self._adapter.is_connected()
        except Exception as e:
            logger.error(f"Queue health check failed: {e}")
            return {
                "healthy": False,
                "adapter": getattr(self._adapter, "name", "unknown"),
                "details": str(e) or type(e).__name__,
            }
        if connected:
            details = "Connected"
        else:
            details = getattr(self._adapter, "last_error", None) or "Connection failed"
        return {
            "healthy": connected,
            "adapter": self._adapter.name,
            "details": details,
        }

    async def close(self) -> None:
        await self._adapter.close()
