"""
Publication executor: claim, publish, record the outcome, notify.

One execution of :meth:`PublicationExecutor.execute` is:

1. **Claim.**  Compare-and-set the item from an expected status into
   ``PUBLISHING``.  Losing the claim aborts with no side effects, so an
   item is never handed to a platform twice, however many callers race.
2. **Publish.**  Call the platform-publish capability, bounded by
   ``publish_timeout_seconds``.
3. **Record.**  On success create the zeroed metrics row, then write
   ``PUBLISHED``; on failure write ``FAILED`` with the reason.  Platform
   failures are never retried automatically.
4. **Notify.**  After the final write commits, hand the outcome to the
   owner notifier in a tracked background task.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Set

from command_center.config import SchedulerSettings
from command_center.exceptions import (
    InvalidStateError,
    MetricsInitializationError,
    NotFoundError,
    PublishFailedError,
)
from command_center.logging import ComponentLogger, LogComponent
from command_center.models import (
    ContentItem,
    ContentStatus,
    FailureReason,
    PublishResult,
)
from command_center.notifications import OutcomeNotification, OwnerNotifier
from command_center.scheduling.metrics_initializer import MetricsInitializer
from command_center.utils import utc_now

logger = logging.getLogger(__name__)

INTERRUPTED_DETAIL = "interrupted: publication did not finish within {minutes} minutes"


class PublicationExecutor:
    """Runs publications against the platform-publish capability.

    Args:
        db: :class:`~command_center.database.SupabaseDB` instance.
        publisher: Object with ``async publish(item) -> PublishResult``
            (:class:`~command_center.platforms.PlatformPublisher`).
        notifier: Optional :class:`OwnerNotifier`.
        settings: Timeout and notification switches.
        dashboard_url: Link included in owner notifications.
        app_name: Product name included in owner notifications.
        now_fn: Clock, injectable for tests.
    """

    def __init__(
        self,
        db: "SupabaseDB",  # noqa: F821
        publisher: "PlatformPublisher",  # noqa: F821
        notifier: Optional[OwnerNotifier] = None,
        settings: Optional[SchedulerSettings] = None,
        dashboard_url: str = "",
        app_name: str = "Marketing Command Center",
        now_fn: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db = db
        self.publisher = publisher
        self.notifier = notifier
        self.settings = settings or SchedulerSettings()
        self.dashboard_url = dashboard_url
        self.app_name = app_name
        self.now_fn = now_fn
        self.metrics = MetricsInitializer(db)
        self.audit = ComponentLogger(LogComponent.EXECUTOR)
        self._notification_tasks: Set["asyncio.Task[None]"] = set()

    # ================================================================
    # EXECUTION
    # ================================================================

    async def execute(
        self,
        item_id: str,
        expected: Iterable[ContentStatus],
        expected_scheduled_at: Optional[datetime] = None,
    ) -> ContentItem:
        """Claim and publish *item_id*.

        Args:
            item_id: Content item to publish.
            expected: Statuses the claim may start from (``SCHEDULED``
                for triggers; ``DRAFT`` / ``APPROVED`` / ``FAILED`` for
                publish-now).
            expected_scheduled_at: For triggers, the fire time they were
                armed with.  A trigger left over from before a
                re-schedule then loses the claim.

        Returns:
            The item in its final status (``PUBLISHED`` or ``FAILED``).

        Raises:
            NotFoundError: If the item does not exist.
            InvalidStateError: If the claim was lost.  Nothing was
                published and nothing was written.
            PublishFailedError: The platform call ran but its outcome
                could not be recorded (store error or lost final write).
                ``detail`` names the platform post id when there is one.
        """
        item = await self._claim(item_id, list(expected), expected_scheduled_at)

        result = await self._call_platform(item)
        if result.success:
            final = await self._complete(item, result.platform_post_id or "")
        else:
            final = await self._fail(
                item,
                result.reason or FailureReason.UNKNOWN,
                result.detail,
            )

        self._dispatch_notification(final)
        return final

    async def _claim(
        self,
        item_id: str,
        expected: List[ContentStatus],
        expected_scheduled_at: Optional[datetime],
    ) -> ContentItem:
        row = await self.db.transition_status(
            item_id,
            expected,
            ContentStatus.PUBLISHING,
            fields={
                "claimed_at": self.now_fn().isoformat(),
                "platform_post_id": None,
                "failure_reason": None,
                "failure_detail": None,
            },
            expected_scheduled_at=expected_scheduled_at,
        )
        if row is None:
            current = await self.db.get_content_item(item_id)
            if current is None:
                raise NotFoundError(f"Content item {item_id} not found")
            logger.info(
                "[EXECUTOR] Claim lost for %s (status=%s)",
                item_id,
                current.get("status"),
            )
            raise InvalidStateError(
                item_id, current.get("status"), ContentStatus.PUBLISHING.value
            )

        item = ContentItem.from_row(row)
        logger.info(
            "[EXECUTOR] Claimed %s for publishing to %s",
            item_id,
            item.platform.value,
        )
        await self.audit.info(
            "Claimed for publishing", item_id=item_id, platform=item.platform.value
        )
        return item

    async def _call_platform(self, item: ContentItem) -> PublishResult:
        timeout = self.settings.publish_timeout_seconds
        try:
            return await asyncio.wait_for(self.publisher.publish(item), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "[EXECUTOR] Platform call for %s timed out after %.1fs",
                item.id,
                timeout,
            )
            return PublishResult.failed(
                FailureReason.NETWORK_TIMEOUT,
                f"platform call exceeded {timeout:g}s",
            )
        except Exception as exc:
            logger.exception("[EXECUTOR] Platform call for %s raised", item.id)
            return PublishResult.failed(
                FailureReason.UNKNOWN, f"{type(exc).__name__}: {exc}"
            )

    async def _complete(self, item: ContentItem, platform_post_id: str) -> ContentItem:
        try:
            metric_id = await self.metrics.initialize(item.id)
        except MetricsInitializationError as exc:
            return await self._fail(
                item,
                FailureReason.UNKNOWN,
                f"metrics initialization failed: {exc} "
                f"(platform_post_id={platform_post_id})",
            )

        try:
            row = await self.db.transition_status(
                item.id,
                [ContentStatus.PUBLISHING],
                ContentStatus.PUBLISHED,
                fields={
                    "published_at": self.now_fn().isoformat(),
                    "platform_post_id": platform_post_id,
                },
            )
        except Exception as exc:
            await self.metrics.rollback(metric_id, item.id)
            raise await self._unrecorded_outcome(
                item, ContentStatus.PUBLISHED, FailureReason.UNKNOWN, "",
                platform_post_id=platform_post_id, error=exc,
            ) from exc

        if row is None:
            await self.metrics.rollback(metric_id, item.id)
            raise await self._unrecorded_outcome(
                item, ContentStatus.PUBLISHED, FailureReason.UNKNOWN, "",
                platform_post_id=platform_post_id,
            )

        published = ContentItem.from_row(row)
        logger.info(
            "[EXECUTOR] Published %s to %s (platform_post_id=%s)",
            item.id,
            item.platform.value,
            platform_post_id,
        )
        await self.audit.info(
            "Published",
            item_id=item.id,
            platform=item.platform.value,
            data={"platform_post_id": platform_post_id, "metric_id": metric_id},
        )
        return published

    async def _fail(
        self,
        item: ContentItem,
        reason: FailureReason,
        detail: str,
    ) -> ContentItem:
        try:
            row = await self.db.transition_status(
                item.id,
                [ContentStatus.PUBLISHING],
                ContentStatus.FAILED,
                fields={"failure_reason": reason.value, "failure_detail": detail},
            )
        except Exception as exc:
            raise await self._unrecorded_outcome(
                item, ContentStatus.FAILED, reason, detail, error=exc
            ) from exc
        if row is None:
            raise await self._unrecorded_outcome(item, ContentStatus.FAILED, reason, detail)

        failed = ContentItem.from_row(row)
        logger.warning(
            "[EXECUTOR] Publication of %s failed (%s): %s",
            item.id,
            reason.value,
            detail,
        )
        await self.audit.warning(
            "Publication failed",
            item_id=item.id,
            platform=item.platform.value,
            data={"reason": reason.value, "detail": detail},
        )
        return failed

    async def _unrecorded_outcome(
        self,
        item: ContentItem,
        target: ContentStatus,
        reason: FailureReason,
        detail: str,
        platform_post_id: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> PublishFailedError:
        """Log and build the error for a final write that did not land.

        Either the store raised (*error*) or the item left ``PUBLISHING``
        under us; in the second case the current status is read back for
        the detail.
        """
        if error is not None:
            cause = f"store error {type(error).__name__}: {error}"
        else:
            try:
                current = await self.db.get_content_item(item.id)
            except Exception as exc:
                logger.warning("[EXECUTOR] Could not re-read %s: %s", item.id, exc)
                current = None
            status = current.get("status") if current else None
            cause = f"item is now {status}"

        if platform_post_id:
            message = (
                f"published as {platform_post_id} but the {target.value} "
                f"write was not recorded ({cause})"
            )
        else:
            message = f"{detail}; the {target.value} write was not recorded ({cause})"

        logger.error(
            "[EXECUTOR] Final write %s -> %s not recorded for %s: %s",
            ContentStatus.PUBLISHING.value,
            target.value,
            item.id,
            message,
        )
        await self.audit.error(
            "Final status write lost",
            error=error,
            item_id=item.id,
            platform=item.platform.value,
            data={"target": target.value, "platform_post_id": platform_post_id},
        )
        return PublishFailedError(reason.value, message)

    # ================================================================
    # STUCK RECOVERY
    # ================================================================

    async def recover_stuck(self) -> List[str]:
        """Mark items stuck in ``PUBLISHING`` as ``FAILED``.

        An item is stuck when its claim is older than
        ``stuck_timeout_minutes``, e.g. because the process died
        mid-publish.  The outcome on the platform is not known, so the
        reason is ``unknown``.

        Returns:
            Ids of the recovered items.
        """
        minutes = self.settings.stuck_timeout_minutes
        cutoff = self.now_fn() - timedelta(minutes=minutes)
        rows = await self.db.get_stuck_items(cutoff)

        recovered: List[str] = []
        for row in rows:
            moved = await self.db.transition_status(
                row["id"],
                [ContentStatus.PUBLISHING],
                ContentStatus.FAILED,
                fields={
                    "failure_reason": FailureReason.UNKNOWN.value,
                    "failure_detail": INTERRUPTED_DETAIL.format(minutes=minutes),
                },
            )
            if moved is None:
                # finished between the read and the write
                continue
            recovered.append(row["id"])
            self._dispatch_notification(ContentItem.from_row(moved))

        if recovered:
            logger.warning(
                "[EXECUTOR] Recovered %d stuck publication(s): %s",
                len(recovered),
                recovered,
            )
            await self.audit.warning(
                "Recovered stuck publications", data={"item_ids": recovered}
            )
        return recovered

    # ================================================================
    # NOTIFICATIONS
    # ================================================================

    def _dispatch_notification(self, item: ContentItem) -> None:
        if self.notifier is None:
            return
        if item.status == ContentStatus.PUBLISHED and not self.settings.notify_on_success:
            return
        if item.status == ContentStatus.FAILED and not self.settings.notify_on_failure:
            return

        task = asyncio.create_task(self._notify(item))
        self._notification_tasks.add(task)
        task.add_done_callback(self._notification_tasks.discard)

    async def _notify(self, item: ContentItem) -> None:
        outcome = OutcomeNotification.from_item(
            item, dashboard_url=self.dashboard_url, app_name=self.app_name
        )
        try:
            await self.notifier.notify(item.owner_email, outcome)  # type: ignore[union-attr]
        except Exception as exc:
            logger.error(
                "[NOTIFY] Notification for %s to %s failed: %s",
                item.id,
                item.owner_email,
                exc,
            )
            await ComponentLogger(LogComponent.NOTIFIER).error(
                "Owner notification failed", error=exc, item_id=item.id
            )

    async def drain_notifications(self) -> None:
        """Wait for all in-flight owner notifications (call before shutdown)."""
        if self._notification_tasks:
            await asyncio.gather(*self._notification_tasks, return_exceptions=True)
            self._notification_tasks.clear()


__all__ = ["PublicationExecutor", "INTERRUPTED_DETAIL"]
