"""Owner notifications for publication outcomes."""
from command_center.notifications.models import (
    OutcomeNotification,
    OwnerNotifier,
    render_outcome_message,
)
from command_center.notifications.telegram_notifier import (
    LoggingNotifier,
    TelegramNotifier,
)

__all__ = [
    "OutcomeNotification",
    "OwnerNotifier",
    "render_outcome_message",
    "LoggingNotifier",
    "TelegramNotifier",
]
