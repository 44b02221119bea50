"""
Content scheduling service: the operations exposed to the dashboard.

Every operation returns an :class:`~command_center.models.OperationResult`
instead of raising; the scheduling exceptions raised further down are
translated here.  ``publish_now`` also turns store errors into
``PUBLISH_FAILED``.  A store outage during
:meth:`ContentSchedulingService.start` is fatal and propagates.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Union

from command_center.config import Settings
from command_center.exceptions import (
    AlreadyFiringError,
    InvalidStateError,
    InvalidTimeError,
    NotFoundError,
    PublishFailedError,
)
from command_center.logging import ComponentLogger, LogComponent
from command_center.models import (
    ContentItem,
    ContentStatus,
    ErrorCode,
    FailureReason,
    OperationResult,
)
from command_center.notifications import OwnerNotifier
from command_center.scheduling.executor import PublicationExecutor
from command_center.scheduling.registry import RehydrationReport, SchedulingRegistry
from command_center.scheduling.state_machine import REVIEW_TRANSITIONS, sources_for
from command_center.utils import utc_now

logger = logging.getLogger(__name__)

# Every status that may enter PUBLISHING except SCHEDULED, which belongs to
# the trigger (publish-now on a scheduled item is INVALID_STATE).
PUBLISH_NOW_SOURCES = tuple(
    status
    for status in sources_for(ContentStatus.PUBLISHING)
    if status != ContentStatus.SCHEDULED
)


class ContentSchedulingService:
    """Schedules, cancels and publishes content items.

    Owns one :class:`SchedulingRegistry` and one
    :class:`PublicationExecutor`.

    Args:
        db: :class:`~command_center.database.SupabaseDB` instance.
        publisher: Platform-publish capability
            (:class:`~command_center.platforms.PlatformPublisher`).
        notifier: Optional owner notifier.
        settings: Application settings.
        now_fn: Clock, injectable for tests.
        sleep_fn: Sleep used by triggers and the maintenance loop.

    Usage::

        service = ContentSchedulingService(db, PlatformPublisher(), notifier)
        await service.start()
        result = await service.schedule_content(item_id, "2026-11-02T09:00:00Z")
    """

    def __init__(
        self,
        db: "SupabaseDB",  # noqa: F821
        publisher: "PlatformPublisher",  # noqa: F821
        notifier: Optional[OwnerNotifier] = None,
        settings: Optional[Settings] = None,
        now_fn: Callable[[], datetime] = utc_now,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.db = db
        self.settings = settings or Settings()
        self.sleep_fn = sleep_fn
        self.executor = PublicationExecutor(
            db,
            publisher,
            notifier=notifier,
            settings=self.settings.scheduler,
            dashboard_url=self.settings.dashboard_url,
            app_name=self.settings.app_name,
            now_fn=now_fn,
        )
        self.registry = SchedulingRegistry(
            db,
            self.executor,
            settings=self.settings.scheduler,
            now_fn=now_fn,
            sleep_fn=sleep_fn,
        )
        self.audit = ComponentLogger(LogComponent.SERVICE)
        self._running: bool = False

    # ================================================================
    # EXPOSED OPERATIONS
    # ================================================================

    async def schedule_content(
        self,
        item_id: str,
        iso_timestamp: Union[str, datetime, None],
    ) -> OperationResult:
        """Schedule (or re-schedule) an item for a future time.

        Errors: ``NOT_FOUND``, ``INVALID_STATE``, ``INVALID_TIME``.
        """
        try:
            item = await self.registry.schedule(item_id, iso_timestamp)
        except NotFoundError as exc:
            return OperationResult.failure(ErrorCode.NOT_FOUND, str(exc))
        except InvalidStateError as exc:
            return OperationResult.failure(ErrorCode.INVALID_STATE, str(exc))
        except InvalidTimeError as exc:
            return OperationResult.failure(ErrorCode.INVALID_TIME, str(exc))
        return OperationResult.success(item)

    async def cancel_scheduled(self, item_id: str) -> OperationResult:
        """Cancel a pending schedule.

        Errors: ``NOT_FOUND``, ``ALREADY_FIRING``.
        """
        try:
            item = await self.registry.cancel(item_id)
        except AlreadyFiringError as exc:
            return OperationResult.failure(ErrorCode.ALREADY_FIRING, str(exc))
        except NotFoundError as exc:
            return OperationResult.failure(ErrorCode.NOT_FOUND, str(exc))
        return OperationResult.success(item)

    async def publish_now(self, item_id: str) -> OperationResult:
        """Publish an unscheduled item immediately.

        Errors: ``NOT_FOUND``, ``INVALID_STATE``, ``PUBLISH_FAILED`` (with
        the failure reason).  A platform call whose outcome could not be
        recorded, and a store error on the claim, are ``PUBLISH_FAILED``
        too; the detail then says what happened on the platform.
        """
        try:
            item = await self.executor.execute(item_id, PUBLISH_NOW_SOURCES)
        except NotFoundError as exc:
            return OperationResult.failure(ErrorCode.NOT_FOUND, str(exc))
        except InvalidStateError as exc:
            return OperationResult.failure(ErrorCode.INVALID_STATE, str(exc))
        except PublishFailedError as exc:
            return OperationResult.failure(
                ErrorCode.PUBLISH_FAILED, exc.detail, reason=FailureReason(exc.reason)
            )
        except Exception as exc:
            logger.exception("[SERVICE] publish_now for %s hit a store error", item_id)
            return OperationResult.failure(
                ErrorCode.PUBLISH_FAILED,
                f"store error before publishing {type(exc).__name__}: {exc}",
                reason=FailureReason.UNKNOWN,
            )

        if item.status == ContentStatus.PUBLISHED:
            return OperationResult.success(item, platform_post_id=item.platform_post_id)

        return OperationResult(
            ok=False,
            error=ErrorCode.PUBLISH_FAILED,
            reason=item.failure_reason or FailureReason.UNKNOWN,
            detail=item.failure_detail or "",
            item=item,
        )

    async def list_scheduled(self, owner_id: str) -> List[ContentItem]:
        """An owner's ``SCHEDULED`` items, earliest first."""
        rows = await self.db.get_scheduled_for_owner(owner_id)
        return [ContentItem.from_row(row) for row in rows]

    async def review_transition(
        self,
        item_id: str,
        target: ContentStatus,
        note: str = "",
    ) -> OperationResult:
        """Move an item through the approval workflow.

        Supports ``DRAFT -> REVIEW`` and ``REVIEW -> APPROVED / DRAFT /
        FAILED``.  A rejection (``FAILED``) is recorded with reason
        ``content-policy`` and *note* as the detail.

        Errors: ``NOT_FOUND``, ``INVALID_STATE``.
        """
        row = await self.db.get_content_item(item_id)
        if row is None:
            return OperationResult.failure(
                ErrorCode.NOT_FOUND, f"Content item {item_id} not found"
            )

        current = ContentStatus(row["status"])
        if (current, target) not in REVIEW_TRANSITIONS:
            return OperationResult.failure(
                ErrorCode.INVALID_STATE,
                str(InvalidStateError(item_id, current.value, target.value)),
            )

        fields = {}
        if target == ContentStatus.FAILED:
            fields = {
                "claimed_at": None,
                "failure_reason": FailureReason.CONTENT_POLICY.value,
                "failure_detail": note or "rejected in review",
            }

        updated = await self.db.transition_status(item_id, [current], target, fields=fields)
        if updated is None:
            return OperationResult.failure(
                ErrorCode.INVALID_STATE,
                f"Content item {item_id} changed status during review",
            )

        logger.info(
            "[SERVICE] Review transition %s: %s -> %s",
            item_id,
            current.value,
            target.value,
        )
        await self.audit.info(
            "Review transition",
            item_id=item_id,
            data={"from": current.value, "to": target.value, "note": note},
        )
        return OperationResult.success(ContentItem.from_row(updated))

    # ================================================================
    # LIFECYCLE
    # ================================================================

    async def start(self) -> RehydrationReport:
        """Rehydrate the schedule.  Call once before serving requests.

        Raises:
            RetryExhaustedError: The store is unavailable (fatal).
        """
        async with self.audit.timed("Rehydrating schedule"):
            report = await self.registry.rehydrate()
        self._running = True
        return report

    async def run_maintenance(self) -> None:
        """Run maintenance cycles until :meth:`stop` is called."""
        interval = self.settings.scheduler.maintenance_interval_seconds
        self._running = True
        logger.info("[SERVICE] Maintenance loop started (interval=%.0fs)", interval)

        while self._running:
            try:
                await self.maintenance_cycle()
            except asyncio.CancelledError:
                logger.info("[SERVICE] Maintenance loop cancelled")
                break
            except Exception:
                logger.exception("[SERVICE] Unexpected error in maintenance cycle")

            try:
                await self.sleep_fn(interval)
            except asyncio.CancelledError:
                logger.info("[SERVICE] Maintenance loop sleep cancelled")
                break

        logger.info("[SERVICE] Maintenance loop stopped")

    async def maintenance_cycle(self) -> None:
        """Recover stuck publications and fire orphaned due items."""
        recovered = await self.executor.recover_stuck()
        fired = await self.registry.fire_due()
        if recovered or fired:
            logger.info(
                "[SERVICE] Maintenance: %d recovered, %d fired", len(recovered), len(fired)
            )

    async def stop(self) -> None:
        """Stop maintenance, drop idle triggers, flush notifications."""
        self._running = False
        await self.registry.shutdown()
        await self.executor.drain_notifications()
        logger.info("[SERVICE] Stopped")


__all__ = ["ContentSchedulingService", "PUBLISH_NOW_SOURCES"]
