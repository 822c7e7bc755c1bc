"""
Centralized configuration for the Threads auto-reply service.

This module uses Pydantic Settings to load and validate environment variables.
All service configuration is centralized here to avoid scattered config files.

Usage:
    from config import settings
    print(settings.ai_model)

    # Validate dashboard-saved settings before they are stored
    from config import SettingValidator
    value = SettingValidator.validate_setting("boolean", "yes")  # -> "true"

Environment Variables:
    See .env.example for all available configuration options.
"""

import json
import logging
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # Supabase
    # =========================================================================
    supabase_url: str = ""
    supabase_key: str = Field(
        default="",
        validation_alias=AliasChoices("supabase_key", "supabase_anon_key"),
    )
    # Local store used when Supabase cannot be reached at startup
    sqlite_fallback_path: str = "threads_autoreply.db"

    # =========================================================================
    # AI Provider (Gemini)
    # =========================================================================
    ai_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("ai_api_key", "gemini_api_key"),
    )
    ai_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ai_model: str = "gemini-2.0-flash"
    ai_timeout: float = 30.0  # seconds
    ai_max_attempts: int = 1  # 1 = no retry
    reply_language: str = "日本語"

    # =========================================================================
    # Threads Platform
    # =========================================================================
    threads_graph_url: str = "https://graph.threads.net"
    threads_app_id: str = ""
    threads_app_secret: str = ""
    threads_access_token: str = ""
    threads_timeout: float = 10.0  # seconds

    # =========================================================================
    # Webhook Security
    # =========================================================================
    webhook_verify_token: str = ""
    # Development only: accept deliveries without a valid signature
    webhook_allow_unsigned: bool = False
    system_user_id: str = "00000000-0000-0000-0000-000000000000"

    # =========================================================================
    # Event Queue
    # =========================================================================
    event_queue_size: int = 1000
    worker_concurrency: int = 4
    shutdown_grace_seconds: float = 5.0

    # =========================================================================
    # Operator Alerts (Telegram, optional)
    # =========================================================================
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    min_telegram_alert_level: str = "ERROR"

    # =========================================================================
    # HTTP Server
    # =========================================================================
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    def missing_required(self) -> list[str]:
        """Return the environment names of required settings that are empty."""
        required = [
            ("SUPABASE_URL", self.supabase_url),
            ("SUPABASE_KEY", self.supabase_key),
            ("AI_API_KEY", self.ai_api_key),
        ]
        return [name for name, value in required if not value]

    def validate_required(self) -> None:
        """
        Validate required configuration at startup.

        Raises:
            ValueError: If required configuration is missing.
        """
        missing = self.missing_required()
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")
        logger.info("Configuration validation passed")


class SettingValidator:
    """Validation for key/value settings saved from the dashboard."""

    SETTING_TYPES = ("string", "number", "boolean", "json")

    TRUE_VALUES = ("true", "1", "yes", "on", "enabled")
    FALSE_VALUES = ("false", "0", "no", "off", "disabled")

    @classmethod
    def validate_setting(cls, setting_type: str, value: Any) -> str | None:
        """
        Validate a setting value against its declared type.

        Values are stored as text, so the normalized string form is returned.

        Args:
            setting_type: One of SETTING_TYPES.
            value: Raw value from the request body.

        Returns:
            Normalized string value, or None when no value was given.

        Raises:
            ValueError: If the type is unknown or the value does not parse.
        """
        if setting_type not in cls.SETTING_TYPES:
            valid = ", ".join(cls.SETTING_TYPES)
            raise ValueError(f"Unknown setting_type '{setting_type}'. Must be one of: {valid}")

        if value is None:
            return None

        if setting_type == "string":
            return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)

        if setting_type == "number":
            if isinstance(value, bool):
                raise ValueError("Must be a number")
            try:
                number = float(value)
            except (ValueError, TypeError):
                raise ValueError("Must be a number")
            return str(int(number)) if number.is_integer() else str(number)

        if setting_type == "boolean":
            if isinstance(value, bool):
                return "true" if value else "false"
            text = str(value).strip().lower()
            if text in cls.TRUE_VALUES:
                return "true"
            if text in cls.FALSE_VALUES:
                return "false"
            raise ValueError("Must be a boolean")

        # json
        if isinstance(value, str):
            try:
                json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"Must be valid JSON: {e.msg}")
            return value
        return json.dumps(value, ensure_ascii=False)


# Singleton instance for global settings
settings = Settings()
