"""Structured audit logging for the scheduling core."""
from command_center.logging.models import LogLevel, LogComponent, LogEntry
from command_center.logging.agent_logger import AgentLogger, init_logger, get_logger
from command_center.logging.component_logger import ComponentLogger, TimedOperation

__all__ = [
    "LogLevel", "LogComponent", "LogEntry",
    "AgentLogger", "init_logger", "get_logger",
    "ComponentLogger", "TimedOperation",
]
