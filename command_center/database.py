"""
Unified async database client for the scheduling core.

The scheduler, executor and metrics initializer talk to Supabase only
through ``SupabaseDB``; status writes only through ``transition_status``.

Tables (see ``supabase/schema.sql``):
    - ``posts``         -- content items and their lifecycle status
    - ``post_metrics``  -- append-only performance snapshots
    - ``agent_logs``    -- structured audit log entries

Usage::

    from command_center.database import SupabaseDB, get_db

    db = await get_db()
    row = await db.get_content_item(item_id)
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from supabase import AsyncClient, create_async_client

from command_center.exceptions import DatabaseError, ValidationError
from command_center.models import ContentStatus
from command_center.scheduling.state_machine import INITIAL_STATUS, require_transition
from command_center.utils import utc_now

logger = logging.getLogger(__name__)

POSTS_TABLE = "posts"
POST_METRICS_TABLE = "post_metrics"
AGENT_LOGS_TABLE = "agent_logs"


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Reject ``None`` and whitespace-only strings; *name* labels the error."""
    if value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} must not be blank")


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Connection settings for the Supabase project.

    ``url`` comes from ``SUPABASE_URL`` and ``key`` from
    ``SUPABASE_SERVICE_KEY``.  Row-level security is bypassed by the
    service key, so it stays server-side.
    """

    url: str
    key: str

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Read both settings from the environment.

        Raises:
            ValueError: One of the two variables is unset or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Unified **async** database client for the scheduling core.

    The ``posts`` row is the single source of truth for an item's
    lifecycle.  Every status change goes through
    :meth:`transition_status`, a conditional update that only matches
    rows still in an expected status.

    Build instances with ``await SupabaseDB.create()``; the async client
    can only be created inside a running event loop.  Tests pass a fake
    client straight to the constructor.
    """

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    @classmethod
    async def create(
        cls, config: Optional[SupabaseConfig] = None
    ) -> "SupabaseDB":
        """Connect using *config*, or the environment when it is omitted."""
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        return cls(client)

    # -----------------------------------------------------------------
    # CONTENT ITEMS
    # -----------------------------------------------------------------

    async def save_content_item(self, item: Dict[str, Any]) -> str:
        """Insert a content item row.

        Args:
            item: Row dict.  Must contain ``id`` and ``platform``;
                ``status`` defaults to the initial lifecycle status.

        Returns:
            The id of the inserted row.

        Raises:
            ValidationError: On missing / invalid fields.
            DatabaseError: When the insert returns no data.
        """
        if not item:
            raise ValidationError("content item cannot be None or empty")

        required_fields: Set[str] = {"id", "platform"}
        missing = required_fields - set(item.keys())
        if missing:
            raise ValidationError(
                f"content item missing required fields: {missing}"
            )
        item = {"status": INITIAL_STATUS.value, **item}

        result = await self.client.table(POSTS_TABLE).insert(item).execute()
        if not result.data:
            raise DatabaseError(f"Supabase returned no row for the {POSTS_TABLE} insert")
        return result.data[0]["id"]

    async def get_content_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        """Get a content item by id.

        Returns:
            Row dict or ``None`` if not found.
        """
        validate_not_empty(item_id, "item_id")

        result = await (
            self.client.table(POSTS_TABLE)
            .select("*")
            .eq("id", item_id)
            .execute()
        )
        return result.data[0] if result.data else None

    async def transition_status(
        self,
        item_id: str,
        expected: Iterable[ContentStatus],
        target: ContentStatus,
        fields: Optional[Dict[str, Any]] = None,
        expected_scheduled_at: Optional[datetime] = None,
    ) -> Optional[Dict[str, Any]]:
        """Atomically move an item from one of *expected* to *target*.

        The update only matches when the row's status is still one of
        *expected* (and, when given, its ``scheduled_at`` equals
        *expected_scheduled_at*).  Exactly one concurrent caller can win
        a given transition; losers get ``None`` and have changed nothing.

        ``scheduled_at`` is cleared on every transition except into
        ``SCHEDULED`` and ``published_at`` is cleared on every transition
        except into ``PUBLISHED``, unless *fields* sets them explicitly.

        Args:
            item_id: Id of the content item.
            expected: Statuses the row must currently be in.
            target: Status to write.
            fields: Extra columns to write with the status.
            expected_scheduled_at: Optional fire time the row must match.

        Returns:
            The updated row, or ``None`` if the row was not in an
            expected state.

        Raises:
            InvalidStateError: If any *expected* -> *target* pair is not
                a legal transition.
        """
        validate_not_empty(item_id, "item_id")
        expected_statuses = list(expected)
        if not expected_statuses:
            raise ValidationError("expected statuses cannot be empty")
        for status in expected_statuses:
            require_transition(item_id, status, target)

        update: Dict[str, Any] = {
            "scheduled_at": None,
            "published_at": None,
        }
        update.update(fields or {})
        update["status"] = target.value
        update["updated_at"] = utc_now().isoformat()

        query = (
            self.client.table(POSTS_TABLE)
            .update(update)
            .eq("id", item_id)
            .in_("status", [status.value for status in expected_statuses])
        )
        if expected_scheduled_at is not None:
            query = query.eq("scheduled_at", expected_scheduled_at.isoformat())

        result = await query.execute()
        # If data is returned, the update matched and the transition won
        return result.data[0] if result.data else None

    async def get_items_by_status(
        self,
        status: ContentStatus,
        due_before: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Get items in *status*, ordered by ``scheduled_at`` ascending.

        Args:
            status: Status to filter on.
            due_before: When given, only rows with
                ``scheduled_at <= due_before``.
        """
        query = (
            self.client.table(POSTS_TABLE)
            .select("*")
            .eq("status", status.value)
        )
        if due_before is not None:
            query = query.lte("scheduled_at", due_before.isoformat())

        result = await query.order("scheduled_at", desc=False).execute()
        return result.data

    async def get_scheduled_for_owner(
        self, owner_id: str
    ) -> List[Dict[str, Any]]:
        """Get an owner's ``SCHEDULED`` items ordered by ``scheduled_at``."""
        validate_not_empty(owner_id, "owner_id")

        result = await (
            self.client.table(POSTS_TABLE)
            .select("*")
            .eq("owner_id", owner_id)
            .eq("status", ContentStatus.SCHEDULED.value)
            .order("scheduled_at", desc=False)
            .execute()
        )
        return result.data

    async def get_stuck_items(self, cutoff: datetime) -> List[Dict[str, Any]]:
        """Get items claimed for publishing at or before *cutoff*."""
        result = await (
            self.client.table(POSTS_TABLE)
            .select("*")
            .eq("status", ContentStatus.PUBLISHING.value)
            .lte("claimed_at", cutoff.isoformat())
            .execute()
        )
        return result.data

    # -----------------------------------------------------------------
    # POST METRICS
    # -----------------------------------------------------------------

    async def create_post_metric(self, metric: Dict[str, Any]) -> str:
        """Insert a metrics snapshot row.

        Args:
            metric: Metrics data dict.  Must contain ``post_id``.

        Returns:
            Id of the inserted snapshot row.

        Raises:
            ValidationError: On missing / invalid fields.
            DatabaseError: When the insert returns no data.
        """
        if not metric:
            raise ValidationError("metric cannot be None or empty")
        if "post_id" not in metric:
            raise ValidationError("metric must have 'post_id'")

        result = await (
            self.client.table(POST_METRICS_TABLE).insert(metric).execute()
        )
        if not result.data:
            raise DatabaseError(f"Supabase returned no row for the {POST_METRICS_TABLE} insert")
        return result.data[0]["id"]

    async def get_post_metrics(self, post_id: str) -> List[Dict[str, Any]]:
        """Get all metric snapshots of a post, newest first."""
        validate_not_empty(post_id, "post_id")

        result = await (
            self.client.table(POST_METRICS_TABLE)
            .select("*")
            .eq("post_id", post_id)
            .order("recorded_at", desc=True)
            .execute()
        )
        return result.data

    async def delete_post_metric(self, metric_id: str) -> None:
        """Delete a metric snapshot (used to undo a half-finished publish)."""
        validate_not_empty(metric_id, "metric_id")

        await (
            self.client.table(POST_METRICS_TABLE)
            .delete()
            .eq("id", metric_id)
            .execute()
        )

    # -----------------------------------------------------------------
    # AUDIT LOG
    # -----------------------------------------------------------------

    async def save_log_entry(self, entry: Dict[str, Any]) -> None:
        """Insert a structured log entry into ``agent_logs``."""
        if not entry:
            raise ValidationError("log entry cannot be None or empty")

        await self.client.table(AGENT_LOGS_TABLE).insert(entry).execute()


# =============================================================================
# SHARED INSTANCE
# =============================================================================

_db_instance: Optional[SupabaseDB] = None
_db_lock: Optional[asyncio.Lock] = None

# guards creation of _db_lock
_init_lock = threading.Lock()


async def get_db() -> SupabaseDB:
    """Return the process-wide ``SupabaseDB``, connecting on first use.

    Concurrent first callers share one connection attempt.
    """
    global _db_instance, _db_lock

    if _db_lock is None:
        with _init_lock:
            if _db_lock is None:
                _db_lock = asyncio.Lock()

    if _db_instance is None:
        async with _db_lock:
            if _db_instance is None:
                _db_instance = await SupabaseDB.create()

    return _db_instance
