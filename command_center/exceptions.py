"""
Custom exception classes for the marketing command center scheduling core.

Exceptions follow the fail-fast philosophy inside the core: every illegal
operation raises immediately with enough context to debug it.  The public
service layer (:mod:`command_center.scheduling.service`) converts the
scheduling errors below into typed results for callers.

Hierarchy:
    Exception
    +-- CommandCenterError (base for all domain errors)
    |   +-- SchedulingError
    |   |   +-- InvalidStateError
    |   |   +-- InvalidTimeError
    |   |   +-- NotFoundError
    |   |   +-- AlreadyFiringError
    |   |   +-- PublishFailedError
    |   |   +-- MetricsInitializationError
    |   +-- PlatformError
    |       +-- PlatformRateLimitError
    |       +-- PlatformCredentialError
    |       +-- ContentPolicyError
    |       +-- PlatformTimeoutError
    |       +-- PlatformUnavailableError
    +-- ValidationError (ValueError)
    +-- DatabaseError
    +-- ConfigurationError
    +-- RetryExhaustedError
"""

from typing import Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class CommandCenterError(Exception):
    """Base exception for all command-center domain errors."""

    pass


# =============================================================================
# CORE EXCEPTIONS
# =============================================================================


class ValidationError(ValueError):
    """Raised when input validation fails."""

    pass


class DatabaseError(Exception):
    """Raised when database operations fail."""

    pass


class ConfigurationError(Exception):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(Exception):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# SCHEDULING EXCEPTIONS
# =============================================================================


class SchedulingError(CommandCenterError):
    """Base for errors raised by the scheduling and publication core."""

    pass


class InvalidStateError(SchedulingError):
    """Raised when an operation is not legal from the item's current status.

    Attributes:
        item_id: Content item the operation targeted.
        current: Status the item was in (string value), if known.
        target: Status the operation tried to reach (string value).
    """

    def __init__(
        self,
        item_id: str,
        current: Optional[str],
        target: Optional[str] = None,
    ):
        self.item_id = item_id
        self.current = current
        self.target = target
        if target:
            message = (
                f"Content item {item_id} cannot move from "
                f"'{current}' to '{target}'"
            )
        else:
            message = f"Content item {item_id} is in state '{current}'"
        super().__init__(message)


class InvalidTimeError(SchedulingError):
    """Raised when a schedule time is unparseable or not in the future."""

    pass


class NotFoundError(SchedulingError):
    """Raised when an item does not exist or has no armed trigger."""

    pass


class AlreadyFiringError(SchedulingError):
    """Raised when a cancel races with (and loses to) the publication claim."""

    pass


class PublishFailedError(SchedulingError):
    """Raised when a platform call ran but its outcome could not be recorded.

    Attributes:
        reason: :class:`~command_center.models.FailureReason`
            value string (e.g. ``"rate-limit"``).
        detail: Free-text failure detail preserved for operators.
    """

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"Publish failed ({reason}): {detail}")


class MetricsInitializationError(SchedulingError):
    """Raised when the zeroed metrics row for a publication cannot be created."""

    pass


# =============================================================================
# PLATFORM EXCEPTIONS
# =============================================================================


class PlatformError(CommandCenterError):
    """Base for failures reported by a social platform API.

    Each subclass carries the failure reason it maps to, so the executor
    never has to interpret platform payloads itself.
    """

    reason: str = "unknown"


class PlatformRateLimitError(PlatformError):
    """Raised when the platform rate-limits the request."""

    reason = "rate-limit"


class PlatformCredentialError(PlatformError):
    """Raised when the access token is invalid or expired."""

    reason = "invalid-credential"


class ContentPolicyError(PlatformError):
    """Raised when the platform rejects the content (policy / format)."""

    reason = "content-policy"


class PlatformTimeoutError(PlatformError):
    """Raised when the platform request times out or the network fails."""

    reason = "network-timeout"


class PlatformUnavailableError(PlatformError):
    """Raised when the platform API is down or not supported."""

    reason = "platform-unavailable"


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    # Base
    "CommandCenterError",
    # Core
    "ValidationError",
    "DatabaseError",
    "ConfigurationError",
    "RetryExhaustedError",
    # Scheduling
    "SchedulingError",
    "InvalidStateError",
    "InvalidTimeError",
    "NotFoundError",
    "AlreadyFiringError",
    "PublishFailedError",
    "MetricsInitializationError",
    # Platform
    "PlatformError",
    "PlatformRateLimitError",
    "PlatformCredentialError",
    "ContentPolicyError",
    "PlatformTimeoutError",
    "PlatformUnavailableError",
]
