"""Audit trail for scheduling decisions and publication outcomes.

Every entry is appended to ``logs/scheduler.log`` as a JSON line (ERROR and
above are duplicated into ``logs/errors.log``).  When a ``SupabaseDB`` is
attached, entries at or above ``min_level`` are mirrored into the
``agent_logs`` table.  A Telegram notifier, if given, receives the
readable form of serious entries.  The last thousand entries stay in memory
for ``get_recent()``.

Module-level access goes through ``init_logger()`` at startup and
``get_logger()`` everywhere else.
"""

import asyncio
import logging
import traceback
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Set

import aiofiles

from command_center.logging.models import LogComponent, LogEntry, LogLevel
from command_center.utils import utc_now

logger = logging.getLogger(__name__)


class AgentLogger:
    """Central audit log for the scheduling core.

    Parameters:
        log_dir: Where the JSON-lines files live.
        db: Optional :class:`~command_center.database.SupabaseDB` with a
            ``save_log_entry()`` method.
        telegram_notifier: Optional notifier with a ``send_log()`` method.
        min_level: Entries below this level never reach ``agent_logs``.
        telegram_min_level: Entries below this level are not forwarded.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        db: Any = None,
        telegram_notifier: Any = None,
        min_level: LogLevel = LogLevel.INFO,
        telegram_min_level: LogLevel = LogLevel.ERROR,
    ) -> None:
        self.log_dir = Path(log_dir)
        if not self.log_dir.exists():
            self.log_dir.mkdir(parents=True)

        self.db = db
        self.telegram = telegram_notifier
        self.min_level = min_level
        self.telegram_min_level = telegram_min_level

        self._main_log = self.log_dir / "scheduler.log"
        self._error_log = self.log_dir / "errors.log"

        self._recent: Deque[LogEntry] = deque(maxlen=1000)

        # sink writes in flight; flush() waits on them
        self._pending_tasks: Set["asyncio.Task[None]"] = set()

    # ------------------------------------------------------------------
    # Core log method
    # ------------------------------------------------------------------

    async def log(
        self,
        level: LogLevel,
        component: LogComponent,
        message: str,
        item_id: Optional[str] = None,
        platform: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        error: Optional[Exception] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Record one audit entry.

        The file write is awaited.  The Supabase and Telegram sinks run as
        background tasks.  No sink failure ever raises into the caller.
        """
        entry = LogEntry(
            timestamp=utc_now(),
            level=level,
            component=component,
            message=message,
            item_id=item_id,
            platform=platform,
            data=data or {},
            duration_ms=duration_ms,
        )

        if error is not None:
            entry.error_type = type(error).__name__
            entry.error_traceback = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )

        self._recent.append(entry)
        try:
            await self._append_to_files(entry)
        except Exception:
            logger.exception("[LOGGING] Failed to append audit entry to %s", self.log_dir)

        if self.db is not None and level.value >= self.min_level.value:
            self._track(self._mirror_to_supabase(entry))

        if self.telegram is not None and level.value >= self.telegram_min_level.value:
            self._track(self._forward_to_telegram(entry))

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def debug(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.DEBUG, component, message, **kwargs)

    async def info(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.INFO, component, message, **kwargs)

    async def warning(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.WARNING, component, message, **kwargs)

    async def error(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.ERROR, component, message, **kwargs)

    async def critical(self, component: LogComponent, message: str, **kwargs: Any) -> None:
        await self.log(LogLevel.CRITICAL, component, message, **kwargs)

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_recent(
        self,
        limit: int = 20,
        level: Optional[LogLevel] = None,
        component: Optional[LogComponent] = None,
        item_id: Optional[str] = None,
    ) -> List[LogEntry]:
        """Newest-last slice of the in-memory entries matching every filter."""
        matched = [
            entry
            for entry in self._recent
            if (level is None or entry.level == level)
            and (component is None or entry.component == component)
            and (item_id is None or entry.item_id == item_id)
        ]
        return matched[-limit:]

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def flush(self) -> None:
        """Block until every in-flight sink write has finished."""
        while self._pending_tasks:
            batch = list(self._pending_tasks)
            await asyncio.gather(*batch, return_exceptions=True)
            self._pending_tasks.difference_update(batch)

    # ------------------------------------------------------------------
    # Sinks
    # ------------------------------------------------------------------

    def _track(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)

    async def _append_to_files(self, entry: LogEntry) -> None:
        line = f"{entry.to_json()}\n"
        targets = [self._main_log]
        if entry.level.value >= LogLevel.ERROR.value:
            targets.append(self._error_log)
        for path in targets:
            async with aiofiles.open(path, mode="a", encoding="utf-8") as handle:
                await handle.write(line)

    async def _mirror_to_supabase(self, entry: LogEntry) -> None:
        try:
            await self.db.save_log_entry(entry.to_dict())
        except Exception:
            logger.exception("[LOGGING] Failed to write audit entry to Supabase")

    async def _forward_to_telegram(self, entry: LogEntry) -> None:
        try:
            await self.telegram.send_log(entry.to_readable())
        except Exception:
            logger.exception("[LOGGING] Failed to forward audit entry to Telegram")


# ======================================================================
# PROCESS-WIDE INSTANCE
# ======================================================================

_logger: Optional[AgentLogger] = None


def init_logger(
    log_dir: str = "logs",
    db: Any = None,
    telegram_notifier: Any = None,
    min_level: LogLevel = LogLevel.INFO,
    telegram_min_level: LogLevel = LogLevel.ERROR,
) -> AgentLogger:
    """Build the process-wide ``AgentLogger`` and return it."""
    global _logger
    _logger = AgentLogger(
        log_dir=log_dir,
        db=db,
        telegram_notifier=telegram_notifier,
        min_level=min_level,
        telegram_min_level=telegram_min_level,
    )
    return _logger


def get_logger() -> AgentLogger:
    """Return the instance built by ``init_logger()``.

    Raises:
        RuntimeError: Nothing has called ``init_logger()`` yet.
    """
    if _logger is None:
        raise RuntimeError("Audit logger is not set up; call init_logger() at startup")
    return _logger
