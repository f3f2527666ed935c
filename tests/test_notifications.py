"""
Tests for Telegram notifications.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx

from intel_archive.services.ingestion import ScanReport, ScanState
from intel_archive.services.notifications import (
    TelegramNotifier,
    _format_duration,
    notify_scan_finished,
    notify_sync_summary,
)


def _notifier(handler) -> TelegramNotifier:
    return TelegramNotifier(bot_token="TOKEN", chat_id="42", transport=httpx.MockTransport(handler))


class TestTelegramNotifier:
    """Tests for TelegramNotifier.send_message."""

    async def test_sends_html_message(self):
        """Test the Bot API request."""
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"ok": True})

        assert await _notifier(handler).send_message("<b>hi</b>", disable_notification=True) is True

        assert str(sent[0].url) == "https://api.telegram.org/botTOKEN/sendMessage"
        body = json.loads(sent[0].content)
        assert body == {"chat_id": "42", "text": "<b>hi</b>", "parse_mode": "HTML", "disable_notification": True}

    async def test_api_error_returns_false(self):
        notifier = _notifier(lambda request: httpx.Response(400, json={"ok": False}))
        assert await notifier.send_message("hi") is False

    async def test_network_error_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        assert await _notifier(handler).send_message("hi") is False

    @patch("intel_archive.services.notifications.get_settings")
    async def test_disabled_without_credentials(self, mock_settings):
        """Test nothing is sent when the bot is not configured."""
        mock_settings.return_value.telegram_bot_token = None
        mock_settings.return_value.telegram_chat_id = None

        notifier = TelegramNotifier(transport=httpx.MockTransport(lambda request: httpx.Response(500)))

        assert notifier.enabled is False
        assert await notifier.send_message("hi") is False


class TestMessages:
    """Tests for the notification helpers."""

    def test_format_duration(self):
        assert _format_duration(4.0) == "4.0s"
        assert _format_duration(125) == "2m 5s"

    @patch("intel_archive.services.notifications.get_notifier")
    async def test_scan_finished_is_silent_without_new_events(self, mock_get_notifier):
        mock_get_notifier.return_value.send_message = AsyncMock(return_value=True)
        report = ScanReport(source_url="https://t.me/a", message="Scan complete: a", pages=3, merged=2)

        await notify_scan_finished(report)

        text = mock_get_notifier.return_value.send_message.await_args.args[0]
        assert "Scan complete: a" in text
        assert "Pages: 3" in text
        assert mock_get_notifier.return_value.send_message.await_args.kwargs["disable_notification"] is True

    @patch("intel_archive.services.notifications.get_notifier")
    async def test_sync_summary_lists_sources(self, mock_get_notifier):
        """Test per-source counts and failures, and an audible alert on failure."""
        mock_get_notifier.return_value.send_message = AsyncMock(return_value=True)
        reports = [
            ScanReport(source_url="https://t.me/a", inserted=4, merged=1),
            ScanReport(source_url="https://t.me/b", state=ScanState.FAILED, error="Network failure"),
        ]

        await notify_sync_summary(reports, duration_seconds=75)

        call = mock_get_notifier.return_value.send_message.await_args
        text = call.args[0]
        assert "✓ https://t.me/a: +4 / 1 merged" in text
        assert "❌ https://t.me/b" in text
        assert "1m 15s" in text
        assert "<b>Failed sources:</b> 1" in text
        assert call.kwargs["disable_notification"] is False
