"""Tests for queue types, adapters and the dispatcher."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from submission_reviewer.config import Settings
from submission_reviewer.errors import QueueBackendUnavailable
from submission_reviewer.queue import (
    DEFAULT_JOB_OPTIONS,
    QUEUE_NAMES,
    BackoffOptions,
    BullMQAdapter,
    ContextGenerateEvent,
    EventRelayAdapter,
    JobOptions,
    QueueDispatcher,
    QueueEvent,
    QueueEventName,
    create_queue_adapter,
    get_queue_config,
    queue_for_event,
)
from submission_reviewer.queue.broker import WORKER_LIMITER
from submission_reviewer.queue.types import ReviewSingleEvent


def context_event(submission_id: str = "sub-1") -> ContextGenerateEvent:
    return ContextGenerateEvent(
        submission_id=submission_id,
        external_id=f"ext-{submission_id}",
        listing_id="listing-1",
        github_url="https://github.com/acme/vault",
    )


class TestJobOptions:
    """Tests for backoff and option merging."""

    def test_exponential_delays(self) -> None:
        backoff = BackoffOptions(type="exponential", delay=5000)
        assert [backoff.delay_for(n) for n in (1, 2, 3)] == [5000, 10000, 20000]

    def test_fixed_delays(self) -> None:
        backoff = BackoffOptions(type="fixed", delay=2000)
        assert [backoff.delay_for(n) for n in (1, 2, 3)] == [2000, 2000, 2000]

    def test_attempt_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            BackoffOptions().delay_for(0)

    def test_default_retry_schedule(self) -> None:
        assert DEFAULT_JOB_OPTIONS.retry_schedule() == [5000, 10000, 20000]

    def test_merged_with_overrides_only_set_fields(self) -> None:
        merged = DEFAULT_JOB_OPTIONS.merged_with(JobOptions(priority=1, attempts=5))

        assert merged.priority == 1
        assert merged.attempts == 5
        assert merged.backoff == DEFAULT_JOB_OPTIONS.backoff
        assert merged.remove_on_complete == 100
        assert DEFAULT_JOB_OPTIONS.merged_with(None) is DEFAULT_JOB_OPTIONS

    def test_to_bullmq_uses_camel_case(self) -> None:
        assert DEFAULT_JOB_OPTIONS.to_bullmq() == {
            "attempts": 3,
            "backoff": {"type": "exponential", "delay": 5000},
            "removeOnComplete": 100,
            "removeOnFail": 50,
        }


class TestEventTypes:
    """Tests for event routing and payload serialization."""

    @pytest.mark.parametrize(
        ("event_name", "queue_name"),
        [
            (QueueEventName.CONTEXT_GENERATE, "github-context-generation"),
            (QueueEventName.REVIEW_SINGLE, "github-review-processing"),
            (QueueEventName.REVIEW_BATCH, "github-batch-review"),
            (QueueEventName.REVIEW_COMPLETED, "review-notifications"),
        ],
    )
    def test_queue_for_event(self, event_name: QueueEventName, queue_name: str) -> None:
        assert queue_for_event(event_name) == queue_name

    def test_unknown_event_goes_to_review_queue(self) -> None:
        assert queue_for_event("something.else") == QUEUE_NAMES["review"]

    def test_payload_is_camel_case(self) -> None:
        data = context_event().to_dict()
        assert data["submissionId"] == "sub-1"
        assert data["githubUrl"] == "https://github.com/acme/vault"
        assert data["techStack"] == []

    def test_payload_accepts_camel_case(self) -> None:
        event = ContextGenerateEvent.model_validate(context_event().to_dict())
        assert event.external_id == "ext-sub-1"

    def test_single_review_converts_to_context_event(self) -> None:
        event = ReviewSingleEvent.model_validate(
            {
                "submissionId": "sub-9",
                "context": {"bountyTitle": "Vault", "bountyDescription": "Build it"},
                "githubData": {"type": "pr", "owner": "acme", "repo": "vault", "prNumber": 7},
            }
        )

        converted = event.to_context_event()

        assert converted.github_url == "https://github.com/acme/vault/pull/7"
        assert converted.external_id == "sub-9"
        assert converted.bounty_title == "Vault"

    def test_queue_event_to_dict(self) -> None:
        event = QueueEvent(
            name=QueueEventName.REVIEW_BATCH,
            data={"listingId": "l"},
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            attempt_number=2,
        )
        assert event.to_dict() == {
            "name": "github.review.batch",
            "data": {"listingId": "l"},
            "timestamp": "2024-01-01T00:00:00+00:00",
            "attemptNumber": 2,
        }


class TestEventRelayAdapter:
    """Tests for the relay adapter."""

    @pytest.mark.asyncio
    async def test_send_maps_event_name(self) -> None:
        captured: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ids": ["evt-1"], "status": 200})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            adapter = EventRelayAdapter("key", "https://relay.test/", http_client=http)
            job_id = await adapter.send(
                QueueEvent(name=QueueEventName.CONTEXT_GENERATE, data={"a": 1})
            )

        assert job_id == "evt-1"
        assert captured["url"] == "https://relay.test/e/key"
        assert captured["body"]["name"] == "github/submission.received"
        assert captured["body"]["data"] == {"a": 1}
        assert isinstance(captured["body"]["ts"], int)

    @pytest.mark.asyncio
    async def test_send_without_ids_generates_one(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        async with httpx.AsyncClient(transport=transport) as http:
            adapter = EventRelayAdapter("key", http_client=http)
            job_id = await adapter.send(
                QueueEvent(name=QueueEventName.REVIEW_COMPLETED, data={})
            )

        assert job_id.startswith("relay-")

    @pytest.mark.asyncio
    async def test_http_error_raises_backend_unavailable(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        async with httpx.AsyncClient(transport=transport) as http:
            adapter = EventRelayAdapter("key", http_client=http)
            with pytest.raises(QueueBackendUnavailable) as exc_info:
                await adapter.send(QueueEvent(name=QueueEventName.REVIEW_BATCH, data={}))

        assert exc_info.value.backend == "Inngest"

    @pytest.mark.asyncio
    async def test_stats_and_connection(self) -> None:
        adapter = EventRelayAdapter("key")
        stats = await adapter.get_queue_stats()

        assert stats.to_dict() == {"waiting": 0, "active": 0, "completed": 0, "failed": 0}
        assert await adapter.is_connected() is True


class TestBullMQAdapter:
    """Tests for the broker adapter with BullMQ mocked out."""

    def test_requires_redis_url(self) -> None:
        with pytest.raises(QueueBackendUnavailable):
            BullMQAdapter("")

    @pytest.mark.asyncio
    async def test_send_routes_and_merges_options(self) -> None:
        with patch("submission_reviewer.queue.broker.Queue") as queue_cls:
            queue = queue_cls.return_value
            queue.add = AsyncMock(return_value=MagicMock(id="42"))

            adapter = BullMQAdapter("redis://localhost:6379")
            job_id = await adapter.send(
                QueueEvent(name=QueueEventName.CONTEXT_GENERATE, data={"x": 1}),
                JobOptions(priority=1),
            )

        assert job_id == "42"
        created = [call.args[0] for call in queue_cls.call_args_list]
        assert created == list(QUEUE_NAMES.values())
        name, data, opts = queue.add.await_args.args
        assert name == "github.context.generate"
        assert data == {"x": 1}
        assert opts["priority"] == 1
        assert opts["attempts"] == 3

    @pytest.mark.asyncio
    async def test_stats_summed_across_queues(self) -> None:
        with patch("submission_reviewer.queue.broker.Queue") as queue_cls:
            queue_cls.return_value.getJobCounts = AsyncMock(
                return_value={"waiting": 1, "active": 2, "completed": 3, "failed": 0}
            )
            adapter = BullMQAdapter("redis://localhost:6379")
            stats = await adapter.get_queue_stats()

        assert stats.waiting == 4
        assert stats.active == 8
        assert stats.completed == 12
        assert stats.failed == 0

    @pytest.mark.asyncio
    async def test_is_connected_false_on_error(self) -> None:
        with patch("submission_reviewer.queue.broker.Queue") as queue_cls:
            queue_cls.return_value.getJobCounts = AsyncMock(
                side_effect=ConnectionError("refused")
            )
            adapter = BullMQAdapter("redis://localhost:6379")
            assert await adapter.is_connected() is False

    @pytest.mark.asyncio
    async def test_is_connected_keeps_last_error(self) -> None:
        with patch("submission_reviewer.queue.broker.Queue") as queue_cls:
            queue_cls.return_value.getJobCounts = AsyncMock(
                side_effect=[RedisConnectionError("Connection refused"), {"waiting": 0}]
            )
            adapter = BullMQAdapter("redis://localhost:6379")

            assert await adapter.is_connected() is False
            assert adapter.last_error == "Connection refused"
            health = await QueueDispatcher(adapter).health_check()

        assert health == {
            "healthy": True,
            "adapter": "BullMQ",
            "details": "Connected",
        }
        assert adapter.last_error is None

    @pytest.mark.asyncio
    async def test_send_wraps_redis_errors(self) -> None:
        with patch("submission_reviewer.queue.broker.Queue") as queue_cls:
            queue_cls.return_value.add = AsyncMock(
                side_effect=RedisConnectionError("refused")
            )
            adapter = BullMQAdapter("redis://localhost:6379")

            with pytest.raises(QueueBackendUnavailable) as exc_info:
                await adapter.send(
                    QueueEvent(name=QueueEventName.CONTEXT_GENERATE, data={})
                )

        assert exc_info.value.backend == "BullMQ"
        assert "refused" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)

    @pytest.mark.asyncio
    async def test_stats_wrap_redis_errors(self) -> None:
        with patch("submission_reviewer.queue.broker.Queue") as queue_cls:
            queue_cls.return_value.getJobCounts = AsyncMock(
                side_effect=RedisConnectionError("refused")
            )
            adapter = BullMQAdapter("redis://localhost:6379")

            with pytest.raises(QueueBackendUnavailable):
                await adapter.get_queue_stats()

    def test_register_worker_uses_limiter(self) -> None:
        processor = AsyncMock()
        with (
            patch("submission_reviewer.queue.broker.Queue"),
            patch("submission_reviewer.queue.broker.Worker") as worker_cls,
        ):
            adapter = BullMQAdapter("redis://localhost:6379")
            worker = adapter.register_worker(QUEUE_NAMES["review"], processor, 3)

        assert worker is worker_cls.return_value
        queue_name, registered, opts = worker_cls.call_args.args
        assert queue_name == "github-review-processing"
        assert registered is processor
        assert opts["concurrency"] == 3
        assert opts["limiter"] == WORKER_LIMITER
        events = [call.args[0] for call in worker.on.call_args_list]
        assert events == ["completed", "failed"]


class TestQueueManager:
    """Tests for backend selection and the dispatcher."""

    def test_relay_is_default(self) -> None:
        adapter = create_queue_adapter(Settings(inngest_event_key="k"))
        assert isinstance(adapter, EventRelayAdapter)

    def test_broker_needs_flag_and_url(self) -> None:
        assert isinstance(
            create_queue_adapter(Settings(use_bullmq=True, redis_url="redis://r")),
            BullMQAdapter,
        )
        assert isinstance(
            create_queue_adapter(Settings(use_bullmq=True)), EventRelayAdapter
        )

    def test_queue_config(self) -> None:
        assert get_queue_config(Settings(redis_url="redis://r")) == {
            "use_bullmq": False,
            "redis_configured": True,
            "inngest_configured": False,
        }

    @pytest.mark.asyncio
    async def test_send_submissions_for_review(self) -> None:
        adapter = MagicMock()
        adapter.send_batch = AsyncMock(return_value=["j1", "j2"])
        dispatcher = QueueDispatcher(adapter)

        job_ids = await dispatcher.send_submissions_for_review(
            [context_event("a"), context_event("b")]
        )

        assert job_ids == ["j1", "j2"]
        events = adapter.send_batch.await_args.args[0]
        assert [e.name for e in events] == [QueueEventName.CONTEXT_GENERATE] * 2
        assert events[1].data["submissionId"] == "b"

    @pytest.mark.asyncio
    async def test_health_check_reports_connection(self) -> None:
        adapter = MagicMock()
        adapter.name = "BullMQ"
        adapter.is_connected = AsyncMock(return_value=False)
        adapter.last_error = None

        health = await QueueDispatcher(adapter).health_check()

        assert health == {
            "healthy": False,
            "adapter": "BullMQ",
            "details": "Connection failed",
        }

    @pytest.mark.asyncio
    async def test_health_check_never_raises(self) -> None:
        adapter = MagicMock()
        adapter.name = "BullMQ"
        adapter.is_connected = AsyncMock(side_effect=RuntimeError("redis down"))

        health = await QueueDispatcher(adapter).health_check()

        assert health["healthy"] is False
        assert health["details"] == "redis down"

    @pytest.mark.asyncio
    async def test_health_check_reports_last_error(self) -> None:
        adapter = MagicMock()
        adapter.name = "BullMQ"
        adapter.is_connected = AsyncMock(return_value=False)
        adapter.last_error = "Error 111 connecting to localhost:6379. Connection refused."

        health = await QueueDispatcher(adapter).health_check()

        assert health["healthy"] is False
        assert health["details"] == adapter.last_error
