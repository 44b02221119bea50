"""Per-component audit logger and timed-operation context manager.

``ComponentLogger`` binds a fixed ``LogComponent`` to the global
``AgentLogger`` so the registry, executor and service can write audit
entries without repeating their component.  Before ``init_logger()`` has
run, entries are dropped (with a debug line on the stdlib logger), so
auditing never interrupts a publication.

``TimedOperation`` is the async context manager returned by
``ComponentLogger.timed()``; it logs how long a block took and whether it
raised.
"""

import logging
import time
from typing import Any, Optional

from command_center.logging.agent_logger import AgentLogger, get_logger
from command_center.logging.models import LogComponent, LogLevel

logger = logging.getLogger(__name__)


class ComponentLogger:
    """Wrapper that binds a fixed ``LogComponent`` to the global logger.

    Usage::

        self.audit = ComponentLogger(LogComponent.EXECUTOR)
        await self.audit.info("Claimed for publishing", item_id=item_id)
    """

    def __init__(self, component: LogComponent) -> None:
        self.component = component

    def _audit_log(self) -> Optional[AgentLogger]:
        try:
            return get_logger()
        except RuntimeError:
            return None

    async def _emit(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        audit = self._audit_log()
        if audit is None:
            logger.debug("[AUDIT] No audit logger, dropped: %s", message)
            return
        await audit.log(level, self.component, message, **kwargs)

    async def debug(self, message: str, **kwargs: Any) -> None:
        await self._emit(LogLevel.DEBUG, message, **kwargs)

    async def info(self, message: str, **kwargs: Any) -> None:
        await self._emit(LogLevel.INFO, message, **kwargs)

    async def warning(self, message: str, **kwargs: Any) -> None:
        await self._emit(LogLevel.WARNING, message, **kwargs)

    async def error(
        self, message: str, error: Optional[Exception] = None, **kwargs: Any
    ) -> None:
        await self._emit(LogLevel.ERROR, message, error=error, **kwargs)

    def timed(self, message: str, **kwargs: Any) -> "TimedOperation":
        """Return an async context manager that logs the block's duration.

        Usage::

            async with self.audit.timed("Rehydrating schedule"):
                report = await self.registry.rehydrate()
        """
        return TimedOperation(self, message, kwargs)


class TimedOperation:
    """Async context manager that measures and logs operation duration.

    On successful exit, logs an INFO entry with ``duration_ms``.
    On exception, logs an ERROR entry with ``duration_ms`` and the error,
    then lets the exception propagate.
    """

    def __init__(
        self, audit: ComponentLogger, message: str, context: Optional[dict] = None
    ) -> None:
        self.audit = audit
        self.message = message
        self.context = context or {}
        self._started: Optional[float] = None

    async def __aenter__(self) -> "TimedOperation":
        self._started = time.monotonic()
        await self.audit.debug(f"Starting: {self.message}", **self.context)
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> None:
        assert self._started is not None
        duration_ms = int((time.monotonic() - self._started) * 1000)

        if exc_type is not None:
            await self.audit.error(
                f"Failed: {self.message}",
                error=exc_val if isinstance(exc_val, Exception) else None,
                duration_ms=duration_ms,
                **self.context,
            )
        else:
            await self.audit.info(
                f"Completed: {self.message}",
                duration_ms=duration_ms,
                **self.context,
            )
