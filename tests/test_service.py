"""End-to-end tests for ContentSchedulingService.

Runs the real registry, executor and database layer over the in-memory
Supabase client.  Only the platform, the notifier, the clock and the
trigger sleep are faked.
"""

import asyncio
from datetime import timedelta

import pytest

from command_center.config import SchedulerSettings, Settings
from command_center.exceptions import DatabaseError, RetryExhaustedError
from command_center.models import (
    ContentStatus,
    ErrorCode,
    FailureReason,
    PublishResult,
)
from command_center.logging import AgentLogger
from command_center.logging import agent_logger as agent_logger_module
from command_center.scheduling.service import (
    PUBLISH_NOW_SOURCES,
    ContentSchedulingService,
)
from fakes import NOW, FakePublisher, GatedSleep, RecordingNotifier, seed

IN_ONE_HOUR = NOW + timedelta(hours=1)


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sleep():
    return GatedSleep()


@pytest.fixture
def service(db, publisher, notifier, clock, sleep):
    settings = Settings(
        scheduler=SchedulerSettings(rehydrate_base_delay=0.0, maintenance_interval_seconds=5)
    )
    return ContentSchedulingService(
        db, publisher, notifier=notifier, settings=settings, now_fn=clock, sleep_fn=sleep
    )


async def fire(service, sleep, clock, item_id):
    """Let the armed trigger for *item_id* fire and wait for it."""
    trigger = service.registry.get_trigger(item_id)
    clock.current = trigger.fire_at
    sleep.release()
    await trigger.task
    await service.executor.drain_notifications()


# =============================================================================
# Scheduled publication
# =============================================================================


class TestScheduledPublication:
    """Schedule, wait, publish: the whole lifecycle."""

    @pytest.mark.asyncio
    async def test_scheduled_item_is_published(
        self, service, fake_client, sleep, clock, notifier
    ):
        seed(fake_client, "item-1", status="approved")

        result = await service.schedule_content("item-1", "2026-03-01T13:00:00Z")
        assert result.ok is True
        assert result.item.status is ContentStatus.SCHEDULED
        assert service.registry.armed_ids() == ["item-1"]

        await fire(service, sleep, clock, "item-1")

        row = fake_client.post("item-1")
        assert row["status"] == "published"
        assert row["platform_post_id"] == "fb_123"
        assert row["published_at"] == IN_ONE_HOUR.isoformat()
        assert row["scheduled_at"] is None
        assert len(fake_client.metrics_for("item-1")) == 1
        assert service.registry.armed_ids() == []
        assert [email for email, _ in notifier.sent] == ["owner@example.com"]

    @pytest.mark.asyncio
    async def test_rate_limited_publication_fails(
        self, service, fake_client, sleep, clock, publisher, notifier
    ):
        seed(fake_client, "item-1", status="draft")
        publisher.result = PublishResult.failed(FailureReason.RATE_LIMIT, "slow down")

        await service.schedule_content("item-1", IN_ONE_HOUR.isoformat())
        await fire(service, sleep, clock, "item-1")

        row = fake_client.post("item-1")
        assert row["status"] == "failed"
        assert row["failure_reason"] == "rate-limit"
        assert row["scheduled_at"] is None
        assert fake_client.metrics_for("item-1") == []
        assert service.registry.armed_ids() == []
        [(_, outcome)] = notifier.sent
        assert outcome.failure_reason is FailureReason.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_past_time_is_rejected(self, service, fake_client):
        seed(fake_client, "item-1", status="approved")

        result = await service.schedule_content("item-1", "2026-03-01T11:00:00Z")

        assert result.ok is False
        assert result.error is ErrorCode.INVALID_TIME
        assert fake_client.post("item-1")["status"] == "approved"
        assert service.registry.armed_ids() == []

    @pytest.mark.asyncio
    async def test_schedule_errors(self, service, fake_client):
        seed(fake_client, "done", status="published", published_at=NOW.isoformat())

        missing = await service.schedule_content("ghost", IN_ONE_HOUR)
        published = await service.schedule_content("done", IN_ONE_HOUR)

        assert missing.error is ErrorCode.NOT_FOUND
        assert published.error is ErrorCode.INVALID_STATE


# =============================================================================
# Cancellation
# =============================================================================


class TestCancelScheduled:
    @pytest.mark.asyncio
    async def test_cancel_after_review_rejection_is_not_found(self, service, fake_client):
        seed(fake_client, "item-1", status="review")
        await service.review_transition("item-1", ContentStatus.FAILED, "off-brand")

        result = await service.cancel_scheduled("item-1")

        assert result.error is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_schedule_then_cancel(self, service, fake_client, publisher):
        seed(fake_client, "item-1", status="approved")
        await service.schedule_content("item-1", IN_ONE_HOUR)

        result = await service.cancel_scheduled("item-1")

        assert result.ok is True
        row = fake_client.post("item-1")
        assert row["status"] == "cancelled"
        assert row["scheduled_at"] is None
        assert fake_client.metrics_for("item-1") == []
        assert service.registry.armed_ids() == []
        assert publisher.calls == []

    @pytest.mark.asyncio
    async def test_cancelled_item_cannot_be_rescheduled(self, service, fake_client):
        seed(fake_client, "item-1", status="approved")
        await service.schedule_content("item-1", IN_ONE_HOUR)
        await service.cancel_scheduled("item-1")

        result = await service.schedule_content("item-1", IN_ONE_HOUR)
        assert result.error is ErrorCode.INVALID_STATE

    @pytest.mark.asyncio
    async def test_cancel_unknown_item(self, service):
        result = await service.cancel_scheduled("ghost")
        assert result.error is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_cancel_during_publication(self, service, fake_client, sleep, publisher):
        seed(fake_client, "item-1", status="approved")
        publisher.gate = asyncio.Event()
        await service.schedule_content("item-1", IN_ONE_HOUR)
        trigger = service.registry.get_trigger("item-1")
        sleep.release()
        await publisher.started.wait()

        result = await service.cancel_scheduled("item-1")

        assert result.error is ErrorCode.ALREADY_FIRING
        publisher.gate.set()
        await trigger.task
        assert fake_client.post("item-1")["status"] == "published"
        assert publisher.calls == ["item-1"]


# =============================================================================
# Publish now
# =============================================================================


class TestPublishNow:
    @pytest.mark.asyncio
    async def test_publish_now_success(self, service, fake_client):
        seed(fake_client, "item-1", status="approved")

        result = await service.publish_now("item-1")

        assert result.ok is True
        assert result.platform_post_id == "fb_123"
        assert result.item.status is ContentStatus.PUBLISHED
        assert len(fake_client.metrics_for("item-1")) == 1

    @pytest.mark.asyncio
    async def test_publish_now_retries_failed_item(self, service, fake_client):
        seed(fake_client, "item-1", status="failed", failure_reason="rate-limit")

        result = await service.publish_now("item-1")

        assert result.ok is True
        assert fake_client.post("item-1")["failure_reason"] is None

    @pytest.mark.asyncio
    async def test_publish_now_failure(self, service, fake_client, publisher):
        seed(fake_client, "item-1", status="draft")
        publisher.result = PublishResult.failed(
            FailureReason.INVALID_CREDENTIAL, "token expired"
        )

        result = await service.publish_now("item-1")

        assert result.ok is False
        assert result.error is ErrorCode.PUBLISH_FAILED
        assert result.reason is FailureReason.INVALID_CREDENTIAL
        assert result.detail == "token expired"
        assert result.item.status is ContentStatus.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["scheduled", "published", "cancelled", "review"])
    async def test_publish_now_invalid_state(self, service, fake_client, publisher, status):
        seed(fake_client, "item-1", status=status)

        result = await service.publish_now("item-1")

        assert result.error is ErrorCode.INVALID_STATE
        assert publisher.calls == []

    @pytest.mark.asyncio
    async def test_publish_now_missing(self, service):
        result = await service.publish_now("ghost")
        assert result.error is ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_double_publish_now_publishes_once(self, service, fake_client, publisher):
        seed(fake_client, "item-1", status="approved")

        first, second = await asyncio.gather(
            service.publish_now("item-1"), service.publish_now("item-1")
        )

        assert sorted([first.ok, second.ok]) == [False, True]
        assert publisher.calls == ["item-1"]

    def test_publish_now_sources(self):
        assert PUBLISH_NOW_SOURCES == (
            ContentStatus.DRAFT, ContentStatus.APPROVED, ContentStatus.FAILED,
        )


class TestPublishNowStoreAndAuditErrors:
    """Store and audit trouble still comes back as a typed result."""

    @pytest.mark.asyncio
    async def test_audit_file_error_does_not_strand_item(
        self, service, fake_client, publisher, monkeypatch
    ):
        async def disk_full(self, entry):
            raise OSError("disk full")

        monkeypatch.setattr(AgentLogger, "_append_to_files", disk_full)
        seed(fake_client, "item-1", status="approved")

        result = await service.publish_now("item-1")

        assert result.ok is True
        assert publisher.calls == ["item-1"]
        assert fake_client.post("item-1")["status"] == "published"

    @pytest.mark.asyncio
    async def test_publishes_without_audit_logger(
        self, service, fake_client, publisher, monkeypatch
    ):
        monkeypatch.setattr(agent_logger_module, "_logger", None)
        seed(fake_client, "item-1", status="approved")

        result = await service.publish_now("item-1")

        assert result.ok is True
        assert publisher.calls == ["item-1"]

    @pytest.mark.asyncio
    async def test_final_write_error_is_publish_failed(
        self, service, db, fake_client, monkeypatch
    ):
        seed(fake_client, "item-1", status="approved")
        original = db.transition_status

        async def flaky(item_id, expected, target, **kwargs):
            if target is ContentStatus.PUBLISHED:
                raise ConnectionError("store blip")
            return await original(item_id, expected, target, **kwargs)

        monkeypatch.setattr(db, "transition_status", flaky)

        result = await service.publish_now("item-1")

        assert result.ok is False
        assert result.error is ErrorCode.PUBLISH_FAILED
        assert result.reason is FailureReason.UNKNOWN
        assert "fb_123" in result.detail
        assert "ConnectionError: store blip" in result.detail
        assert fake_client.metrics_for("item-1") == []

    @pytest.mark.asyncio
    async def test_lost_final_write_is_publish_failed(self, service, fake_client, publisher):
        seed(fake_client, "item-1", status="approved")
        publisher.gate = asyncio.Event()

        task = asyncio.create_task(service.publish_now("item-1"))
        await publisher.started.wait()
        fake_client.post("item-1")["status"] = "failed"
        publisher.gate.set()
        result = await task

        assert result.error is ErrorCode.PUBLISH_FAILED
        assert "published as fb_123" in result.detail
        assert "item is now failed" in result.detail

    @pytest.mark.asyncio
    async def test_claim_store_error_is_publish_failed(
        self, service, fake_client, publisher
    ):
        seed(fake_client, "item-1", status="approved")
        fake_client.failures[("posts", "update")] = DatabaseError("connection reset")

        result = await service.publish_now("item-1")

        assert result.error is ErrorCode.PUBLISH_FAILED
        assert result.reason is FailureReason.UNKNOWN
        assert "connection reset" in result.detail
        assert publisher.calls == []


# =============================================================================
# Listing and review
# =============================================================================


class TestListAndReview:
    @pytest.mark.asyncio
    async def test_list_scheduled_is_ordered(self, service, fake_client):
        for item_id in ("a", "b", "c"):
            seed(fake_client, item_id, status="approved")
        await service.schedule_content("a", NOW + timedelta(hours=3))
        await service.schedule_content("b", NOW + timedelta(hours=1))
        await service.schedule_content("c", NOW + timedelta(hours=2))

        items = await service.list_scheduled("owner-1")

        assert [item.id for item in items] == ["b", "c", "a"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_review_approval_flow(self, service, fake_client):
        seed(fake_client, "item-1", status="draft")

        submitted = await service.review_transition("item-1", ContentStatus.REVIEW)
        approved = await service.review_transition("item-1", ContentStatus.APPROVED)

        assert submitted.ok and approved.ok
        assert fake_client.post("item-1")["status"] == "approved"

    @pytest.mark.asyncio
    async def test_review_rejection_records_note(self, service, fake_client):
        seed(fake_client, "item-1", status="review")

        result = await service.review_transition(
            "item-1", ContentStatus.FAILED, note="off-brand"
        )

        assert result.ok is True
        row = fake_client.post("item-1")
        assert row["failure_reason"] == "content-policy"
        assert row["failure_detail"] == "off-brand"

    @pytest.mark.asyncio
    async def test_review_rejects_non_review_moves(self, service, fake_client):
        seed(fake_client, "item-1", status="draft")

        result = await service.review_transition("item-1", ContentStatus.PUBLISHED)

        assert result.error is ErrorCode.INVALID_STATE
        assert fake_client.post("item-1")["status"] == "draft"

    @pytest.mark.asyncio
    async def test_review_missing_item(self, service):
        result = await service.review_transition("ghost", ContentStatus.REVIEW)
        assert result.error is ErrorCode.NOT_FOUND


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_rehydrates(self, service, fake_client, publisher):
        seed(fake_client, "future", status="scheduled",
             scheduled_at=IN_ONE_HOUR.isoformat())
        seed(fake_client, "overdue", status="scheduled",
             scheduled_at=(NOW - timedelta(minutes=10)).isoformat())

        report = await service.start()

        assert report.armed == ["future"]
        assert report.executed == ["overdue"]
        assert publisher.calls == ["overdue"]
        await service.stop()

    @pytest.mark.asyncio
    async def test_start_fails_when_store_is_down(self, service, fake_client):
        fake_client.failures[("posts", "select")] = DatabaseError("down")
        with pytest.raises(RetryExhaustedError):
            await service.start()

    @pytest.mark.asyncio
    async def test_maintenance_cycle_recovers_and_fires(self, service, fake_client, publisher):
        seed(fake_client, "stuck", status="publishing",
             claimed_at=(NOW - timedelta(hours=1)).isoformat())
        seed(fake_client, "orphan", status="scheduled",
             scheduled_at=(NOW - timedelta(minutes=1)).isoformat())

        await service.maintenance_cycle()

        assert fake_client.post("stuck")["status"] == "failed"
        assert fake_client.post("orphan")["status"] == "published"
        assert publisher.calls == ["orphan"]

    @pytest.mark.asyncio
    async def test_run_maintenance_stops(self, service, sleep):
        loop_task = asyncio.create_task(service.run_maintenance())
        while not sleep.delays:
            await asyncio.sleep(0)

        assert sleep.delays == [5]
        await service.stop()
        sleep.release()
        await asyncio.wait_for(loop_task, timeout=1)

    @pytest.mark.asyncio
    async def test_stop_drops_idle_triggers(self, service, fake_client):
        seed(fake_client, "item-1", status="approved")
        await service.schedule_content("item-1", IN_ONE_HOUR)

        await service.stop()

        assert service.registry.armed_ids() == []
        assert fake_client.post("item-1")["status"] == "scheduled"
