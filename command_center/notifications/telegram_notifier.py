"""
Owner notifications over Telegram, plus a log-only fallback.

:class:`TelegramNotifier` pushes messages to one configured chat via the
Bot API (no polling).  It also serves as the Telegram sink of the audit
logger through :meth:`TelegramNotifier.send_log`.

Fail-fast applies to *configuration* errors (missing token / chat ID).
Delivery errors are logged and never reach the caller: a notification
can not change a publication outcome.
"""

import logging
import os
from typing import Any, Optional

from telegram import Bot

from command_center.notifications.models import (
    OutcomeNotification,
    render_outcome_message,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Telegram message limits
# ---------------------------------------------------------------------------
_MAX_MESSAGE_LENGTH = 4096


def _truncate(text: str, max_length: int = _MAX_MESSAGE_LENGTH) -> str:
    """Truncate *text* to fit within Telegram's message size limit."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n...(truncated)"


class TelegramNotifier:
    """
    Lightweight Telegram notification sender.

    Args:
        bot_token: Telegram Bot API token (from BotFather).
        chat_id: Target chat / group / channel ID.
        bot: Optional pre-built ``telegram.Bot`` (tests pass a mock).

    Usage::

        notifier = TelegramNotifier(token, chat_id)
        await notifier.notify("owner@example.com", outcome)
    """

    def __init__(self, bot_token: str, chat_id: str, bot: Any = None) -> None:
        if not bot_token:
            raise ValueError("TelegramNotifier requires a non-empty bot_token")
        if not chat_id:
            raise ValueError("TelegramNotifier requires a non-empty chat_id")

        self._chat_id: str = chat_id
        self._bot: Any = bot if bot is not None else Bot(token=bot_token)

    @classmethod
    def from_env(cls) -> Optional["TelegramNotifier"]:
        """Build from ``TELEGRAM_BOT_TOKEN`` / ``TELEGRAM_CHAT_ID``, or ``None``."""
        token = os.environ.get("TELEGRAM_BOT_TOKEN", "")
        chat_id = os.environ.get("TELEGRAM_CHAT_ID", "")
        if not token or not chat_id:
            return None
        return cls(token, chat_id)

    # ------------------------------------------------------------------
    # Core send
    # ------------------------------------------------------------------

    async def send(self, message: str) -> None:
        """Send a plain text message to the configured chat."""
        try:
            await self._bot.send_message(
                chat_id=self._chat_id,
                text=_truncate(message),
            )
        except Exception:
            logger.exception(
                "[TELEGRAM] Failed to send message to chat_id=%s",
                self._chat_id,
            )

    # ------------------------------------------------------------------
    # Owner notifications
    # ------------------------------------------------------------------

    async def notify(self, owner_email: str, outcome: OutcomeNotification) -> None:
        subject, text = render_outcome_message(outcome)
        await self.send(f"{subject}\nTo: {owner_email}\n\n{text}")

    async def send_log(self, message: str) -> None:
        """
        Send a log entry to Telegram.

        Used by the logging subsystem to forward high-severity entries.
        """
        await self.send(message)


class LoggingNotifier:
    """Notifier used when no delivery channel is configured."""

    async def notify(self, owner_email: str, outcome: OutcomeNotification) -> None:
        subject, _ = render_outcome_message(outcome)
        logger.info(
            "[NOTIFY] %s -> %s (item=%s)", subject, owner_email, outcome.item_id
        )


__all__ = ["TelegramNotifier", "LoggingNotifier"]
