"""Audit log data models: LogLevel, LogComponent, LogEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class LogLevel(Enum):
    """Severity of an audit entry; compare through ``.value``."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def name_str(self) -> str:
        """Lowercase name, as stored in ``agent_logs.level_name``."""
        return self.name.lower()

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """Resolve ``"info"`` / ``"INFO"`` style names; unknown -> INFO."""
        return cls.__members__.get(name.upper(), cls.INFO)


_LEVEL_TAGS: Dict[LogLevel, str] = {
    LogLevel.DEBUG: "[DEBUG]",
    LogLevel.INFO: "[INFO]",
    LogLevel.WARNING: "[WARN]",
    LogLevel.ERROR: "[ERROR]",
    LogLevel.CRITICAL: "[CRIT]",
}


class LogComponent(Enum):
    """Scheduling-core components that write audit entries."""

    REGISTRY = "registry"
    EXECUTOR = "executor"
    METRICS = "metrics"
    NOTIFIER = "notifier"
    PLATFORM = "platform"
    DATABASE = "database"
    SERVICE = "service"
    STARTUP = "startup"


@dataclass
class LogEntry:
    """Structured audit log entry.

    Carries the content item it concerns (``item_id``) so an operator can
    follow one post from scheduling to its outcome.
    """

    timestamp: datetime
    level: LogLevel
    component: LogComponent
    message: str

    # Context
    item_id: Optional[str] = None
    platform: Optional[str] = None

    data: Dict[str, Any] = field(default_factory=dict)

    # set by AgentLogger.log when an exception is passed
    error_type: Optional[str] = None
    error_traceback: Optional[str] = None

    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Row for the ``agent_logs`` table."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.value,
            "level_name": self.level.name_str,
            "component": self.component.value,
            "message": self.message,
            "item_id": self.item_id,
            "platform": self.platform,
            "data": self.data,
            "error_type": self.error_type,
            "error_traceback": self.error_traceback,
            "duration_ms": self.duration_ms,
        }

    def to_json(self) -> str:
        """Serialize to a single JSON line for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """One-line rendering used for Telegram alerts."""
        parts = [
            _LEVEL_TAGS.get(self.level, "[???]"),
            f"[{self.timestamp:%H:%M:%S}]",
            f"[{self.component.value}]",
            self.message,
        ]
        if self.item_id:
            parts.append(f"(item={self.item_id})")
        if self.duration_ms:
            parts.append(f"({self.duration_ms}ms)")
        return " ".join(parts)
