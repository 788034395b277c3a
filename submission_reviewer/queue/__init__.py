"""Queue dispatch over a Redis broker or a hosted event relay."""

from .broker import BullMQAdapter
from .manager import QueueDispatcher, create_queue_adapter, get_queue_config
from .relay import EventRelayAdapter
from .runner import JobRunner, PeriodicTask, RateLimiter
from .types import (
    DEFAULT_JOB_OPTIONS,
    QUEUE_NAMES,
    BackoffOptions,
    BatchReviewEvent,
    ContextGenerateEvent,
    JobOptions,
    QueueAdapter,
    QueueEvent,
    QueueEventName,
    QueueStats,
    ReviewCompletedEvent,
    queue_for_event,
)

__all__ = [
    "BullMQAdapter",
    "QueueDispatcher",
    "create_queue_adapter",
    "get_queue_config",
    "EventRelayAdapter",
    "JobRunner",
    "PeriodicTask",
    "RateLimiter",
    "DEFAULT_JOB_OPTIONS",
    "QUEUE_NAMES",
    "BackoffOptions",
    "BatchReviewEvent",
    "ContextGenerateEvent",
    "JobOptions",
    "QueueAdapter",
    "QueueEvent",
    "QueueEventName",
    "QueueStats",
    "ReviewCompletedEvent",
    "queue_for_event",
]
