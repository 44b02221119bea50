"""
Scheduling registry: persisted fire times plus in-process triggers.

The ``posts`` row is the source of truth.  A trigger is a derived cache
entry: one ``asyncio`` task per ``SCHEDULED`` item that sleeps until the
item's fire time and then hands it to the executor.  Triggers are never
persisted; :meth:`SchedulingRegistry.rehydrate` rebuilds them at startup.

Every trigger carries the exact ``scheduled_at`` it was armed with and its
claim matches on it, so a trigger that survived a re-schedule can not
publish the item at the old time.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from command_center.config import SchedulerSettings
from command_center.exceptions import (
    AlreadyFiringError,
    InvalidStateError,
    InvalidTimeError,
    NotFoundError,
    PublishFailedError,
)
from command_center.logging import ComponentLogger, LogComponent
from command_center.models import ContentItem, ContentStatus
from command_center.scheduling.executor import PublicationExecutor
from command_center.scheduling.state_machine import require_transition
from command_center.utils import parse_timestamp, utc_now, with_retry

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTrigger:
    """An armed, process-local trigger for one item."""

    item_id: str
    fire_at: datetime
    task: Optional["asyncio.Task[None]"] = None
    firing: bool = False


@dataclass
class RehydrationReport:
    """What :meth:`SchedulingRegistry.rehydrate` did."""

    armed: List[str] = field(default_factory=list)
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    recovered: List[str] = field(default_factory=list)


class SchedulingRegistry:
    """Owns the persisted schedule and the triggers that act on it.

    Args:
        db: :class:`~command_center.database.SupabaseDB` instance.
        executor: Executor the triggers hand items to.
        settings: Startup retry settings.
        now_fn: Clock, injectable for tests.
        sleep_fn: Sleep used by triggers, injectable for tests.
    """

    def __init__(
        self,
        db: "SupabaseDB",  # noqa: F821
        executor: PublicationExecutor,
        settings: Optional[SchedulerSettings] = None,
        now_fn: Callable[[], datetime] = utc_now,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.db = db
        self.executor = executor
        self.settings = settings or SchedulerSettings()
        self.now_fn = now_fn
        self.sleep_fn = sleep_fn
        self.audit = ComponentLogger(LogComponent.REGISTRY)
        self._triggers: Dict[str, ScheduledTrigger] = {}
        # firing triggers replaced by a newer arm(); shutdown() still waits on them
        self._replaced: Set["asyncio.Task[None]"] = set()

    # ================================================================
    # SCHEDULE / CANCEL
    # ================================================================

    async def schedule(
        self,
        item_id: str,
        fire_at: Union[str, datetime, None],
    ) -> ContentItem:
        """Commit *item_id* to *fire_at* and arm its trigger.

        Checks run in order: the item exists, its status allows
        ``SCHEDULED``, then *fire_at* is a valid future time.  Scheduling
        an item that is already ``SCHEDULED`` replaces its time and its
        trigger.

        Raises:
            NotFoundError: The item does not exist.
            InvalidStateError: The item's status does not allow scheduling.
            InvalidTimeError: *fire_at* is unparseable or not in the future.
        """
        row = await self.db.get_content_item(item_id)
        if row is None:
            raise NotFoundError(f"Content item {item_id} not found")

        current = ContentStatus(row["status"])
        require_transition(item_id, current, ContentStatus.SCHEDULED)

        try:
            when = parse_timestamp(fire_at)
        except (TypeError, ValueError) as exc:
            raise InvalidTimeError(f"Unparseable schedule time {fire_at!r}") from exc
        if when is None:
            raise InvalidTimeError("Schedule time is required")
        now = self.now_fn()
        if when <= now:
            raise InvalidTimeError(
                f"Schedule time {when.isoformat()} is not after {now.isoformat()}"
            )

        updated = await self.db.transition_status(
            item_id,
            [current],
            ContentStatus.SCHEDULED,
            fields={
                "scheduled_at": when.isoformat(),
                "claimed_at": None,
                "failure_reason": None,
                "failure_detail": None,
            },
        )
        if updated is None:
            latest = await self.db.get_content_item(item_id)
            raise InvalidStateError(
                item_id,
                latest.get("status") if latest else None,
                ContentStatus.SCHEDULED.value,
            )

        self.arm(item_id, when)
        logger.info("[REGISTRY] Scheduled %s for %s", item_id, when.isoformat())
        await self.audit.info(
            "Scheduled", item_id=item_id, data={"scheduled_at": when.isoformat()}
        )
        return ContentItem.from_row(updated)

    async def cancel(self, item_id: str) -> ContentItem:
        """Cancel a pending schedule.

        The store write decides: only an item still ``SCHEDULED`` can be
        cancelled.  A trigger that is already firing is left alone.

        Raises:
            AlreadyFiringError: The item was claimed for publication.
            NotFoundError: The item does not exist or is not scheduled.
        """
        row = await self.db.transition_status(
            item_id,
            [ContentStatus.SCHEDULED],
            ContentStatus.CANCELLED,
        )
        if row is None:
            current = await self.db.get_content_item(item_id)
            if current is not None and _was_claimed(current):
                raise AlreadyFiringError(
                    f"Content item {item_id} is already {current['status']}"
                )
            raise NotFoundError(f"No pending schedule for content item {item_id}")

        self.disarm(item_id)
        logger.info("[REGISTRY] Cancelled %s", item_id)
        await self.audit.info("Cancelled", item_id=item_id)
        return ContentItem.from_row(row)

    # ================================================================
    # TRIGGERS
    # ================================================================

    def arm(self, item_id: str, fire_at: datetime) -> ScheduledTrigger:
        """Arm a trigger for *item_id*, replacing any existing one.

        An idle trigger is cancelled.  One that is already firing keeps
        running; its claim no longer matches the new time.
        """
        previous = self._triggers.get(item_id)
        if previous is not None and previous.firing and previous.task is not None:
            self._replaced.add(previous.task)
            previous.task.add_done_callback(self._replaced.discard)
        self.disarm(item_id)
        trigger = ScheduledTrigger(item_id=item_id, fire_at=fire_at)
        trigger.task = asyncio.create_task(self._fire(trigger))
        self._triggers[item_id] = trigger
        return trigger

    def disarm(self, item_id: str) -> bool:
        """Drop the trigger for *item_id*.

        A trigger that has started firing is never cancelled; its claim
        decides the outcome.

        Returns:
            ``True`` if an idle trigger was cancelled.
        """
        trigger = self._triggers.get(item_id)
        if trigger is None or trigger.firing:
            return False
        del self._triggers[item_id]
        if trigger.task is not None:
            trigger.task.cancel()
        return True

    def is_armed(self, item_id: str) -> bool:
        return item_id in self._triggers

    def armed_ids(self) -> List[str]:
        return sorted(self._triggers)

    def get_trigger(self, item_id: str) -> Optional[ScheduledTrigger]:
        return self._triggers.get(item_id)

    async def _fire(self, trigger: ScheduledTrigger) -> None:
        delay = (trigger.fire_at - self.now_fn()).total_seconds()
        if delay > 0:
            await self.sleep_fn(delay)

        trigger.firing = True
        try:
            await self.executor.execute(
                trigger.item_id,
                [ContentStatus.SCHEDULED],
                expected_scheduled_at=trigger.fire_at,
            )
        except (InvalidStateError, NotFoundError) as exc:
            logger.info(
                "[REGISTRY] Trigger for %s dropped: %s", trigger.item_id, exc
            )
        except PublishFailedError as exc:
            logger.error(
                "[REGISTRY] Trigger for %s ran, outcome unrecorded: %s",
                trigger.item_id,
                exc.detail,
            )
        except Exception:
            logger.exception(
                "[REGISTRY] Trigger for %s failed", trigger.item_id
            )
        finally:
            if self._triggers.get(trigger.item_id) is trigger:
                del self._triggers[trigger.item_id]

    # ================================================================
    # STARTUP / MAINTENANCE
    # ================================================================

    async def rehydrate(self) -> RehydrationReport:
        """Rebuild triggers from the store.

        Runs once at startup: recovers stuck publications, re-arms future
        items and publishes overdue items one at a time, oldest first.

        Raises:
            RetryExhaustedError: The store could not be read.
        """
        report = RehydrationReport()

        load_stuck = with_retry(
            max_attempts=self.settings.rehydrate_max_attempts,
            base_delay=self.settings.rehydrate_base_delay,
            operation_name="recover stuck publications",
        )(self.executor.recover_stuck)
        report.recovered = await load_stuck()

        load_scheduled = with_retry(
            max_attempts=self.settings.rehydrate_max_attempts,
            base_delay=self.settings.rehydrate_base_delay,
            operation_name="load scheduled items",
        )(self.db.get_items_by_status)
        rows = await load_scheduled(ContentStatus.SCHEDULED)

        now = self.now_fn()
        overdue: List[ContentItem] = []
        for row in rows:
            item = ContentItem.from_row(row)
            if item.scheduled_at is None:
                logger.warning("[REGISTRY] %s is scheduled without a time", item.id)
                report.skipped.append(item.id)
            elif item.scheduled_at > now:
                self.arm(item.id, item.scheduled_at)
                report.armed.append(item.id)
            else:
                overdue.append(item)

        overdue.sort(key=lambda item: item.scheduled_at)
        for item in overdue:
            if await self._execute_due(item):
                report.executed.append(item.id)
            else:
                report.skipped.append(item.id)

        logger.info(
            "[REGISTRY] Rehydrated: %d armed, %d executed, %d skipped, %d recovered",
            len(report.armed),
            len(report.executed),
            len(report.skipped),
            len(report.recovered),
        )
        return report

    async def fire_due(self) -> List[str]:
        """Publish due ``SCHEDULED`` items that have no matching local trigger.

        Covers items scheduled by another process and triggers lost to
        clock drift.  The claim keeps this safe against a concurrent
        trigger.
        """
        rows = await self.db.get_items_by_status(
            ContentStatus.SCHEDULED, due_before=self.now_fn()
        )
        fired: List[str] = []
        for row in rows:
            item = ContentItem.from_row(row)
            trigger = self._triggers.get(item.id)
            if trigger is not None and trigger.fire_at == item.scheduled_at:
                continue
            if await self._execute_due(item):
                fired.append(item.id)
        return fired

    async def _execute_due(self, item: ContentItem) -> bool:
        self.disarm(item.id)
        try:
            await self.executor.execute(
                item.id,
                [ContentStatus.SCHEDULED],
                expected_scheduled_at=item.scheduled_at,
            )
        except (InvalidStateError, NotFoundError) as exc:
            logger.info("[REGISTRY] Overdue %s not executed: %s", item.id, exc)
            return False
        except PublishFailedError as exc:
            logger.error(
                "[REGISTRY] Overdue %s ran, outcome unrecorded: %s", item.id, exc.detail
            )
            return True
        except Exception:
            logger.exception("[REGISTRY] Overdue %s failed to execute", item.id)
            return False
        return True

    async def shutdown(self) -> None:
        """Cancel idle triggers and wait for firing ones to finish."""
        for item_id in list(self._triggers):
            self.disarm(item_id)
        firing = [t.task for t in self._triggers.values() if t.task is not None]
        firing.extend(self._replaced)
        if firing:
            await asyncio.gather(*firing, return_exceptions=True)
        logger.info("[REGISTRY] Shut down")


def _was_claimed(row: Dict[str, Any]) -> bool:
    status = ContentStatus(row["status"])
    if status.has_fired:
        return True
    return status == ContentStatus.FAILED and bool(row.get("claimed_at"))


__all__ = ["SchedulingRegistry", "ScheduledTrigger", "RehydrationReport"]
