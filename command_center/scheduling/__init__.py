"""Content scheduling and publication core."""
from command_center.scheduling.state_machine import (
    TRANSITIONS,
    can_transition,
    require_transition,
)
from command_center.scheduling.metrics_initializer import MetricsInitializer
from command_center.scheduling.executor import PublicationExecutor
from command_center.scheduling.registry import (
    RehydrationReport,
    ScheduledTrigger,
    SchedulingRegistry,
)
from command_center.scheduling.service import ContentSchedulingService

__all__ = [
    "TRANSITIONS",
    "can_transition",
    "require_transition",
    "MetricsInitializer",
    "PublicationExecutor",
    "RehydrationReport",
    "ScheduledTrigger",
    "SchedulingRegistry",
    "ContentSchedulingService",
]
