"""
Small helpers shared by the scheduling core.

Every datetime that reaches the store or a trigger is timezone-aware UTC;
``utc_now``, ``ensure_utc`` and ``parse_timestamp`` are the only ways the
code base produces one.  ``with_retry`` wraps the startup reads.
"""

from datetime import datetime, timezone
import uuid
import asyncio
import logging
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar, Union

from command_center.exceptions import RetryExhaustedError

T = TypeVar("T")

logger = logging.getLogger(__name__)


# ===========================================================================
# TIME AND IDS
# ===========================================================================


def utc_now() -> datetime:
    """The default clock: an aware UTC ``datetime`` for the current instant."""
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Random UUID4 as a string, the key format of every table."""
    return str(uuid.uuid4())


def ensure_utc(dt: datetime) -> datetime:
    """Convert *dt* to UTC; a naive value is labelled UTC, not shifted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (or pass through a datetime) as aware UTC.

    Accepts the trailing ``Z`` form produced by JavaScript clients, which
    ``datetime.fromisoformat`` only understands from Python 3.11 on.

    Args:
        value: ISO string, datetime, or ``None``.

    Returns:
        Timezone-aware UTC datetime, or ``None`` for empty input.

    Raises:
        ValueError: If *value* is a non-empty string that is not ISO-8601.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


# ===========================================================================
# RETRY WITH EXPONENTIAL BACKOFF
# Used for the store reads at startup; a store that stays down is fatal.
# ===========================================================================


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 2.0,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    operation_name: Optional[str] = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Wrap a coroutine function so transient failures are retried.

    The n-th retry waits ``base_delay * 2 ** (n - 1)`` seconds.  Exceptions
    outside *retryable_exceptions* propagate on the first attempt.

    Args:
        max_attempts: Total attempts, including the first.
        base_delay: Delay before the first retry, in seconds.
        retryable_exceptions: Exception types worth retrying.
        operation_name: Name used in log messages and in the raised
            error; defaults to the wrapped function's ``__name__``.

    Raises:
        RetryExhaustedError: The last attempt failed too.

    Usage::

        load = with_retry(max_attempts=3, operation_name="load scheduled items")(
            db.get_items_by_status
        )
        rows = await load(ContentStatus.SCHEDULED)
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        op_name = operation_name or func.__name__

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Optional[Exception] = None
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retryable_exceptions as exc:
                    last_error = exc
                    if attempt == max_attempts:
                        break
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        "[RETRY] %s attempt %d/%d failed: %s. Retrying in %.1fs",
                        op_name,
                        attempt,
                        max_attempts,
                        exc,
                        delay,
                    )
                    await asyncio.sleep(delay)

            logger.error(
                "[RETRY EXHAUSTED] %s failed after %d attempts: %s",
                op_name,
                max_attempts,
                last_error,
            )
            raise RetryExhaustedError(
                op_name, max_attempts, last_error  # type: ignore[arg-type]
            )

        return wrapper

    return decorator
