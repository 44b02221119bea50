"""Tests for owner notifications (rendering, Telegram delivery, log fallback)."""

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from command_center.models import ContentItem, ContentStatus, FailureReason
from command_center.notifications import (
    LoggingNotifier,
    OutcomeNotification,
    TelegramNotifier,
    render_outcome_message,
)
from command_center.notifications.telegram_notifier import _truncate
from fakes import NOW, make_post_row


def published_outcome(**overrides):
    row = make_post_row(
        status="published",
        published_at=NOW.isoformat(),
        platform_post_id="fb_123",
        character_id="char-7",
    )
    row.update(overrides)
    return OutcomeNotification.from_item(
        ContentItem.from_row(row), dashboard_url="http://localhost:3000/dashboard"
    )


def failed_outcome():
    row = make_post_row(
        status="failed", failure_reason="rate-limit", failure_detail="429 from graph"
    )
    return OutcomeNotification.from_item(ContentItem.from_row(row))


@pytest.fixture
def mock_bot():
    bot = MagicMock()
    bot.send_message = AsyncMock()
    return bot


# =============================================================================
# Rendering
# =============================================================================


class TestRenderOutcomeMessage:
    def test_success_message(self):
        subject, text = render_outcome_message(published_outcome())

        assert subject == "Post Published Successfully - Marketing Command Center"
        assert "Title: Spring launch" in text
        assert "Platform: facebook" in text
        assert "Character: char-7" in text
        assert "Published at: 2026-03-01 12:00 UTC" in text
        assert "Platform post id: fb_123" in text
        assert text.endswith("Dashboard: http://localhost:3000/dashboard")

    def test_failure_message(self):
        outcome = failed_outcome()
        subject, text = render_outcome_message(outcome)

        assert outcome.succeeded is False
        assert outcome.status is ContentStatus.FAILED
        assert subject == "Post Publication Failed - Marketing Command Center"
        assert "Reason: rate-limit" in text
        assert "Detail: 429 from graph" in text
        assert "Dashboard" not in text

    def test_failure_without_reason_reads_unknown(self):
        outcome = failed_outcome()
        outcome.failure_reason = None
        _, text = render_outcome_message(outcome)
        assert "Reason: unknown" in text

    def test_from_item_copies_fields(self):
        outcome = published_outcome()
        assert outcome.item_id == "item-1"
        assert outcome.platform == "facebook"
        assert outcome.published_at == NOW
        assert outcome.succeeded is True


# =============================================================================
# TelegramNotifier
# =============================================================================


class TestTelegramNotifier:
    def test_requires_token(self):
        with pytest.raises(ValueError, match="bot_token"):
            TelegramNotifier("", "chat")

    def test_requires_chat_id(self):
        with pytest.raises(ValueError, match="chat_id"):
            TelegramNotifier("token", "")

    def test_from_env_returns_none_when_unset(self):
        assert TelegramNotifier.from_env() is None

    @pytest.mark.asyncio
    async def test_notify_sends_rendered_message(self, mock_bot):
        notifier = TelegramNotifier("token", "chat-1", bot=mock_bot)

        await notifier.notify("owner@example.com", published_outcome())

        mock_bot.send_message.assert_awaited_once()
        kwargs = mock_bot.send_message.call_args.kwargs
        assert kwargs["chat_id"] == "chat-1"
        assert kwargs["text"].startswith(
            "Post Published Successfully - Marketing Command Center\n"
            "To: owner@example.com\n\n"
        )

    @pytest.mark.asyncio
    async def test_send_errors_are_logged(self, mock_bot, caplog):
        mock_bot.send_message.side_effect = RuntimeError("telegram down")
        notifier = TelegramNotifier("token", "chat-1", bot=mock_bot)

        with caplog.at_level(logging.ERROR):
            await notifier.send("hello")

        assert "Failed to send message" in caplog.text

    @pytest.mark.asyncio
    async def test_send_log_forwards(self, mock_bot):
        notifier = TelegramNotifier("token", "chat-1", bot=mock_bot)
        await notifier.send_log("[ERROR] boom")
        assert mock_bot.send_message.call_args.kwargs["text"] == "[ERROR] boom"

    def test_truncate(self):
        assert _truncate("short") == "short"
        long_text = _truncate("x" * 5000)
        assert len(long_text) <= 4096
        assert long_text.endswith("...(truncated)")


class TestLoggingNotifier:
    @pytest.mark.asyncio
    async def test_logs_subject(self, caplog):
        with caplog.at_level(logging.INFO):
            await LoggingNotifier().notify("owner@example.com", failed_outcome())

        assert "Post Publication Failed" in caplog.text
        assert "owner@example.com" in caplog.text
        assert FailureReason.RATE_LIMIT.value not in caplog.text
