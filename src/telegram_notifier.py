"""
Telegram Notifier - operator alerts over a Telegram bot.

Configuration:
    TELEGRAM_BOT_TOKEN: Bot token from @BotFather
    TELEGRAM_CHAT_ID: Operator chat ID
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional

from telegram import Bot

logger = logging.getLogger(__name__)

LEVEL_ICONS = {
    "DEBUG": "🔍",
    "INFO": "ℹ️",
    "WARNING": "⚠️",
    "ERROR": "🚨",
    "CRITICAL": "🔥",
}


def format_alert(
    alert_type: str,
    level: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> str:
    """Render an alert as Telegram Markdown."""
    timestamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    lines = [
        f"{LEVEL_ICONS.get(level, '🚨')} *{level} ALERT*",
        "",
        f"*Type:* `{alert_type}`",
        f"*Time:* {timestamp}",
        f"*Message:* {message}",
    ]

    if details:
        lines.append("")
        lines.append("*Details:*")
        for key, value in details.items():
            if isinstance(value, (dict, list)):
                value_str = json.dumps(value, indent=2, ensure_ascii=False)
                lines.append(f"```\n{key}: {value_str}\n```")
            else:
                lines.append(f"  • {key}: `{value}`")

    return "\n".join(lines)


class TelegramNotifier:
    """Sends alert messages to a single operator chat."""

    def __init__(self, token: str, chat_id: str, bot: Optional[Bot] = None) -> None:
        self.chat_id = chat_id
        self.bot = bot or Bot(token=token)

    async def send_alert(
        self,
        alert_type: str,
        level: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=format_alert(alert_type, level, message, details),
            parse_mode="Markdown",
        )
        logger.info(f"Sent {level} alert: {alert_type}")
