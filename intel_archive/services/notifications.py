"""
Telegram Notification Service

Sends notifications to a Telegram chat for:
- Background task failures
- Finished or failed source scans
- Sync cycle summaries
"""

from datetime import datetime
from typing import TYPE_CHECKING

import httpx
from loguru import logger

from intel_archive.config import get_settings

if TYPE_CHECKING:
    from intel_archive.services.ingestion import ScanReport


class TelegramNotifier:
    """Telegram bot for sending notifications."""

    def __init__(
        self,
        bot_token: str | None = None,
        chat_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.bot_token = bot_token or settings.telegram_bot_token
        self.chat_id = chat_id or settings.telegram_chat_id
        self.transport = transport
        self.enabled = bool(self.bot_token and self.chat_id)

        if not self.enabled:
            logger.warning("[Telegram] Bot not configured - notifications disabled")

    @property
    def api_url(self) -> str:
        return f"https://api.telegram.org/bot{self.bot_token}"

    async def send_message(self, text: str, disable_notification: bool = False) -> bool:
        """
        Send an HTML message to the configured chat.

        Returns:
            True if sent successfully, False otherwise (never raises)
        """
        if not self.enabled:
            logger.debug(f"[Telegram] Skipping (not configured): {text[:50]}...")
            return False

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/sendMessage",
                    json={
                        "chat_id": self.chat_id,
                        "text": text,
                        "parse_mode": "HTML",
                        "disable_notification": disable_notification,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"[Telegram] Error sending message: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"[Telegram] Failed: {response.status_code} - {response.text}")
            return False

        logger.debug("[Telegram] Message sent")
        return True


# Singleton instance
_notifier: TelegramNotifier | None = None


def get_notifier() -> TelegramNotifier:
    """Get the singleton TelegramNotifier instance."""
    global _notifier
    if _notifier is None:
        _notifier = TelegramNotifier()
    return _notifier


def _format_duration(duration_seconds: float) -> str:
    if duration_seconds >= 60:
        return f"{int(duration_seconds // 60)}m {int(duration_seconds % 60)}s"
    return f"{duration_seconds:.1f}s"


# =============================================================================
# TASK NOTIFICATIONS
# =============================================================================


async def notify_job_failed(job_name: str, error: str) -> bool:
    """Notify that a background task raised."""
    message = "❌ <b>Task Failed</b>\n\n"
    message += f"📋 <b>Task:</b> <code>{job_name}</code>\n"
    message += f"🕐 <b>Time:</b> {datetime.now().strftime('%H:%M:%S')}\n"
    message += f"⚠️ <b>Error:</b> {error[:200]}\n"

    # Failures should not be silent
    return await get_notifier().send_message(message, disable_notification=False)


# =============================================================================
# SCAN NOTIFICATIONS
# =============================================================================


async def notify_scan_finished(report: "ScanReport") -> bool:
    """Summary of a finished scan. Silent unless it archived new events."""
    message = f"✅ <b>{report.message}</b>\n\n"
    message += f"🔗 {report.source_url}\n"
    message += f"📄 Pages: {report.pages}\n"
    message += f"🆕 New events: {report.inserted}\n"
    message += f"🔁 Merged: {report.merged}\n"
    if report.extraction_errors:
        message += f"⚠️ Extraction errors: {report.extraction_errors}\n"

    return await get_notifier().send_message(message, disable_notification=report.inserted == 0)


async def notify_scan_failed(report: "ScanReport") -> bool:
    message = f"❌ <b>{report.message}</b>\n\n"
    message += f"🔗 {report.source_url}\n"
    message += f"📄 Pages before failure: {report.pages}\n"
    return await get_notifier().send_message(message, disable_notification=False)


async def notify_sync_summary(reports: list["ScanReport"], duration_seconds: float | None = None) -> bool:
    """One message per sync cycle: per-source new/merged counts and failures."""
    inserted = sum(report.inserted for report in reports)
    failed = [report for report in reports if report.error]

    message = "📊 <b>Sync Summary</b>\n\n"
    message += f"🕐 <b>Time:</b> {datetime.now().strftime('%H:%M:%S')}\n"
    if duration_seconds is not None:
        message += f"⏱️ <b>Duration:</b> {_format_duration(duration_seconds)}\n"

    message += "\n<b>Sources:</b>\n"
    for report in reports:
        status = "❌" if report.error else "✓"
        message += f"  {status} {report.source_url}: +{report.inserted} / {report.merged} merged\n"

    message += f"\n🆕 <b>New events:</b> {inserted}\n"
    if failed:
        message += f"⚠️ <b>Failed sources:</b> {len(failed)}\n"

    # Only notify if something new arrived or something broke
    return await get_notifier().send_message(message, disable_notification=inserted == 0 and not failed)
