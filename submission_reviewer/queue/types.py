"""Queue event, job option and adapter types shared by both backends."""

from collections.abc import Sequence
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class QueueEventName(str, Enum):
    """Backend-agnostic event names."""

    CONTEXT_GENERATE = "github.context.generate"
    REVIEW_SINGLE = "github.review.single"
    REVIEW_BATCH = "github.review.batch"
    REVIEW_COMPLETED = "github.review.completed"


# Physical queue names used by the broker backend.
QUEUE_NAMES = {
    "context": "github-context-generation",
    "review": "github-review-processing",
    "batch": "github-batch-review",
    "notifications": "review-notifications",
}

EVENT_QUEUES: dict[str, str] = {
    QueueEventName.CONTEXT_GENERATE.value: QUEUE_NAMES["context"],
    QueueEventName.REVIEW_SINGLE.value: QUEUE_NAMES["review"],
    QueueEventName.REVIEW_BATCH.value: QUEUE_NAMES["batch"],
    QueueEventName.REVIEW_COMPLETED.value: QUEUE_NAMES["notifications"],
}


def queue_for_event(event_name: QueueEventName | str) -> str:
    """Physical queue for an event; unknown names go to review processing."""
    if isinstance(event_name, QueueEventName):
        event_name = event_name.value
    return EVENT_QUEUES.get(event_name, QUEUE_NAMES["review"])


@dataclass
class QueueEvent:
    """An event plus its payload as sent through a queue backend."""

    name: QueueEventName
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    attempt_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name.value,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.attempt_number is not None:
            result["attemptNumber"] = self.attempt_number
        return result


@dataclass(frozen=True)
class BackoffOptions:
    """Retry delay policy; ``delay`` is in milliseconds."""

    type: Literal["exponential", "fixed"] = "exponential"
    delay: int = 5000

    def delay_for(self, attempt: int) -> int:
        """
        Delay in milliseconds before retry number ``attempt`` (1-indexed).

        Exponential backoff doubles the base delay per attempt:
        5000, 10000, 20000 for a 5000 ms base.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        if self.type == "fixed":
            return self.delay
        return self.delay * 2 ** (attempt - 1)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "delay": self.delay}


@dataclass(frozen=True)
class JobOptions:
    """Per-job delivery options. ``None`` means "use the default"."""

    priority: int | None = None
    delay: int | None = None
    attempts: int | None = None
    backoff: BackoffOptions | None = None
    remove_on_complete: bool | int | None = None
    remove_on_fail: bool | int | None = None

    def merged_with(self, overrides: "JobOptions | None") -> "JobOptions":
        """Return these options with every non-None field of ``overrides`` applied."""
        if overrides is None:
            return self
        changes = {
            f.name: getattr(overrides, f.name)
            for f in fields(overrides)
            if getattr(overrides, f.name) is not None
        }
        return replace(self, **changes)

    def retry_schedule(self) -> list[int]:
        """Delays in milliseconds for each attempt under the backoff policy."""
        if not self.backoff or not self.attempts:
            return []
        return [self.backoff.delay_for(n) for n in range(1, self.attempts + 1)]

    def to_bullmq(self) -> dict[str, Any]:
        """Job options in the broker's camelCase form, omitting unset values."""
        raw = {
            "priority": self.priority,
            "delay": self.delay,
            "attempts": self.attempts,
            "backoff": self.backoff.to_dict() if self.backoff else None,
            "removeOnComplete": self.remove_on_complete,
            "removeOnFail": self.remove_on_fail,
        }
        return {key: value for key, value in raw.items() if value is not None}


DEFAULT_JOB_OPTIONS = JobOptions(
    attempts=3,
    backoff=BackoffOptions(type="exponential", delay=5000),
    remove_on_complete=100,
    remove_on_fail=50,
)


@dataclass
class QueueStats:
    """Job counts summed across a backend's queues."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "waiting": self.waiting,
            "active": self.active,
            "completed": self.completed,
            "failed": self.failed,
        }


class _EventPayload(BaseModel):
    """Event payload: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class ContextGenerateEvent(_EventPayload):
    """A submission is ready to be fetched and reviewed."""

    submission_id: str
    external_id: str
    listing_id: str
    github_url: str
    bounty_title: str | None = None
    bounty_description: str | None = None
    requirements: list[str] = []
    tech_stack: list[str] = []
    model: str | None = None


class ReviewContext(_EventPayload):
    bounty_title: str
    bounty_description: str
    requirements: list[str] = []
    tech_stack: list[str] = []


class GitHubData(_EventPayload):
    type: Literal["pr", "repository"]
    owner: str
    repo: str
    pr_number: int | None = None


class ReviewSingleEvent(_EventPayload):
    """Review an already-identified repository or pull request."""

    submission_id: str
    context: ReviewContext
    github_data: GitHubData
    model: str | None = None
    external_id: str | None = None
    listing_id: str = ""

    @property
    def github_url(self) -> str:
        url = f"https://github.com/{self.github_data.owner}/{self.github_data.repo}"
        if self.github_data.type == "pr" and self.github_data.pr_number:
            url += f"/pull/{self.github_data.pr_number}"
        return url

    def to_context_event(self) -> ContextGenerateEvent:
        return ContextGenerateEvent(
            submission_id=self.submission_id,
            external_id=self.external_id or self.submission_id,
            listing_id=self.listing_id,
            github_url=self.github_url,
            bounty_title=self.context.bounty_title,
            bounty_description=self.context.bounty_description,
            requirements=self.context.requirements,
            tech_stack=self.context.tech_stack,
            model=self.model,
        )


class BatchReviewEvent(_EventPayload):
    """Review all (or the listed) submissions of one listing."""

    listing_id: str
    submission_ids: list[str] = []
    after_deadline: bool = False
    triggered_by: Literal["cron", "webhook", "manual"] = "manual"


class ReviewCompletedEvent(_EventPayload):
    """Emitted once a review has been persisted."""

    submission_id: str
    external_id: str
    listing_id: str
    review_id: str | None = None
    score: int
    label: str
    labels: list[str] = []
    summary: str = ""
    confidence: float = 0.0
    processing_time_ms: int = 0
    model_used: str = "unknown"


class QueueAdapter(Protocol):
    """Interface implemented by the broker and relay backends."""

    name: str

    async def send(self, event: QueueEvent, options: JobOptions | None = None) -> str:
        """Deliver one event and return its job id."""
        ...

    async def send_batch(
        self, events: Sequence[QueueEvent], options: JobOptions | None = None
    ) -> list[str]:
        """Deliver events in order and return their job ids."""
        ...

    async def is_connected(self) -> bool:
        """Whether the backend can accept events right now."""
        ...

    async def get_queue_stats(self) -> QueueStats:
        """Job counts for monitoring."""
        ...

    async def close(self) -> None:
        """Release connections and workers."""
        ...
