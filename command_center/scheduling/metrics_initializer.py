"""
Zeroed metrics snapshot for a newly published content item.

The executor creates the snapshot *before* the final
``PUBLISHING -> PUBLISHED`` write and rolls it back if that write does
not go through, so a published item always has exactly one initial
snapshot and an unpublished item has none.
"""

import logging

from command_center.exceptions import MetricsInitializationError
from command_center.logging import ComponentLogger, LogComponent
from command_center.models import PostMetric
from command_center.utils import generate_id

logger = logging.getLogger(__name__)


class MetricsInitializer:
    """Creates and, when needed, removes the initial metrics row.

    Args:
        db: :class:`~command_center.database.SupabaseDB` instance.
    """

    def __init__(self, db: "SupabaseDB") -> None:  # noqa: F821
        self.db = db
        self.audit = ComponentLogger(LogComponent.METRICS)

    async def initialize(self, item_id: str) -> str:
        """Insert the all-zero snapshot for *item_id*.

        Returns:
            Id of the created metrics row.

        Raises:
            MetricsInitializationError: If the row could not be created.
        """
        metric = PostMetric.zeroed(generate_id(), item_id)
        try:
            metric_id = await self.db.create_post_metric(metric.to_row())
        except Exception as exc:
            logger.error(
                "[METRICS] Could not create initial metrics for %s: %s",
                item_id,
                exc,
            )
            raise MetricsInitializationError(
                f"Could not create initial metrics for {item_id}: {exc}"
            ) from exc

        logger.debug("[METRICS] Initial metrics %s created for %s", metric_id, item_id)
        return metric_id

    async def rollback(self, metric_id: str, item_id: str) -> None:
        """Delete a snapshot whose publish did not complete.

        A failed delete is logged and audited, not raised: the caller is
        already reporting a failed publish.
        """
        try:
            await self.db.delete_post_metric(metric_id)
        except Exception as exc:
            logger.error(
                "[METRICS] Rollback of metrics %s for %s failed: %s",
                metric_id,
                item_id,
                exc,
            )
            await self.audit.error(
                "Orphaned metrics row left behind",
                error=exc,
                item_id=item_id,
                data={"metric_id": metric_id},
            )
            return
        logger.info("[METRICS] Rolled back metrics %s for %s", metric_id, item_id)


__all__ = ["MetricsInitializer"]
