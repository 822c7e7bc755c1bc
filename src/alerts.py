"""
Operator alerts for failures nobody sees in the dashboard.

Two things end up here: audit rows that could not be written, and
events whose processing crashed outside the orchestrator's own error
handling. Every alert goes to the process log; alerts at or above
``min_telegram_level`` are also forwarded to the Telegram notifier
when one is configured.

Usage:
    from src.alerts import AlertManager

    alerts = AlertManager(notifier=telegram, min_telegram_level="ERROR")
    await alerts.error("audit_write_failed", "Could not store log entry", event_id="mention_1")
"""

import logging
from enum import IntEnum
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from src.telegram_notifier import TelegramNotifier

logger = logging.getLogger(__name__)


class AlertLevel(IntEnum):
    """Alert severity, valued as the matching stdlib logging level."""
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class AlertManager:
    """Logs alerts and forwards the severe ones to Telegram. Never raises."""

    def __init__(
        self,
        notifier: Optional["TelegramNotifier"] = None,
        min_telegram_level: str = "ERROR",
    ):
        self.notifier = notifier
        try:
            self.min_telegram_level = AlertLevel[min_telegram_level.upper()]
        except KeyError:
            logger.warning(
                f"Invalid min_telegram_alert_level '{min_telegram_level}', using ERROR"
            )
            self.min_telegram_level = AlertLevel.ERROR

    async def notify(
        self,
        level: AlertLevel,
        alert_type: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Record an alert.

        Args:
            level: Severity; also decides whether Telegram sees it.
            alert_type: Short machine-friendly category, e.g. "pipeline_crash".
            message: Human-readable summary.
            details: Context such as event_id, user_id, error.
        """
        suffix = f" | {details}" if details else ""
        logger.log(level, f"[{alert_type}] {message}{suffix}")

        if self.notifier is None or level < self.min_telegram_level:
            return
        try:
            await self.notifier.send_alert(
                alert_type=alert_type,
                level=level.name,
                message=message,
                details=details,
            )
        except Exception as e:
            logger.error(f"Failed to send Telegram alert: {e}")

    async def error(self, alert_type: str, message: str, **details) -> None:
        await self.notify(AlertLevel.ERROR, alert_type, message, details)

    async def critical(self, alert_type: str, message: str, **details) -> None:
        await self.notify(AlertLevel.CRITICAL, alert_type, message, details)
