"""
Database Client - Supabase integration for persistence.

This module handles all store operations using Supabase as the backend.
Every row except logs is owned by exactly one user; row-level security on
the Supabase side guarantees a user only sees its own rows.

Tables:
    gas_personas:
        - id, user_id, name (unique per user), display_name, style
        - recent_posts: JSON array of example posts
        - active, created_at, updated_at

    gas_rules:
        - id, user_id, rule_key, rule_value, description, created_at, updated_at
        - rule_key 'auto_reply' with rule_value 'enabled' turns auto-reply on
        - rule_key 'keywords' holds a comma-separated keyword list

    gas_settings:
        - id, user_id, setting_key, setting_value, setting_type

    gas_templates:
        - id, user_id, template_id, persona (persona name), intent, body,
          cta, hashtags, min_len, max_len, active, created_at

    gas_webhook_config:
        - id, user_id, app_id, gas_webapp_url, hmac_secret, is_active,
          test_status, last_test_at

    gas_logs (append-only):
        - id, user_id, event_id, status, text, reply, error_message,
          persona, template_id, thread_id, target_user_id, latency_ms,
          metadata (JSONB), created_at

    gas_ng_words:
        - id, user_id, ng_word, action

    gas_banlist:
        - id, user_id, target_user_id, reason, banned_until

SQL Setup (run in Supabase SQL Editor):
    CREATE TABLE gas_logs (
        id UUID DEFAULT gen_random_uuid() PRIMARY KEY,
        user_id UUID NOT NULL,
        event_id TEXT NOT NULL,
        status TEXT NOT NULL,
        text TEXT,
        reply TEXT,
        error_message TEXT,
        persona TEXT,
        template_id TEXT,
        thread_id TEXT,
        target_user_id TEXT,
        latency_ms INT,
        metadata JSONB,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
    );

    -- Correlation lookups from the log viewer
    CREATE INDEX IF NOT EXISTS idx_gas_logs_event
        ON gas_logs(user_id, event_id, created_at DESC);
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from supabase import create_client, Client

from src.errors import ExternalServiceError, NotFoundError, ValidationError
from src.models import parse_timestamp

logger = logging.getLogger(__name__)

PERSONA_FIELDS = ("name", "display_name", "style", "recent_posts", "active")
RULE_FIELDS = ("rule_key", "rule_value", "description")
SETTING_FIELDS = ("setting_key", "setting_value", "setting_type")
WEBHOOK_CONFIG_FIELDS = ("app_id", "gas_webapp_url", "hmac_secret", "is_active")


def _is_constraint_violation(error: Exception) -> bool:
    """Postgres integrity errors carry SQLSTATE class 23."""
    code = str(getattr(error, "code", "") or "")
    text = str(error)
    return (
        code.startswith("23")
        or "duplicate key" in text
        or "violates" in text
    )


def build_row(user_id: str, data: dict, fields: tuple[str, ...]) -> dict:
    """
    Build an upsert row scoped to ``user_id``.

    ``id`` is only included when the caller supplied one, so a missing id
    inserts a new row instead of overwriting an existing one.
    """
    row: dict[str, Any] = {"user_id": user_id}
    if data.get("id"):
        row["id"] = data["id"]
    for name in fields:
        if name in data:
            row[name] = data[name]
    return row


class Database:
    """
    Supabase client for personas, rules, settings, webhook configs and logs.

    Provides async-friendly methods for all store operations required by
    the pipeline and the data-management API. The Supabase client is
    synchronous, so queries run in a worker thread and the caller's
    coroutine suspends instead of blocking the event loop.
    """

    def __init__(
        self,
        url: str,
        key: str,
        client: Optional[Client] = None,
    ) -> None:
        """
        Initialize database connection.

        Args:
            url: Supabase project URL.
            key: Supabase anon/service key.
            client: Pre-built client (tests inject a fake here).
        """
        self._url = url
        self._key = key
        self.client: Optional[Client] = client
        self._is_connected = client is not None

        if self.client is None:
            self._connect()
        logger.info("Database client initialized")

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            # Sanitize URL (strip trailing slashes)
            url = self._url.rstrip("/")

            logger.info(f"Connecting to database at: {url}")
            self.client = create_client(url, self._key)
            self._is_connected = True
            logger.info("Database connection established")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            self._is_connected = False
            raise

    async def _ensure_connection(self) -> None:
        """Ensure database connection is active, reconnect if needed."""
        if not self._is_connected or self.client is None:
            logger.warning("Database connection lost, attempting reconnect...")
            self._connect()

    async def _execute(self, query, action: str) -> list[dict]:
        """
        Run a prepared query off the event loop and return its rows.

        Raises:
            ValidationError: On unique/constraint violations.
            ExternalServiceError: On any other store failure.
        """
        await self._ensure_connection()
        try:
            result = await asyncio.to_thread(query.execute)
        except Exception as e:
            if _is_constraint_violation(e):
                logger.warning(f"Constraint violation during {action}: {e}")
                raise ValidationError(getattr(e, "message", None) or str(e)) from e
            logger.error(f"Database error during {action}: {e}")
            raise ExternalServiceError(f"Database error during {action}: {e}") from e
        return result.data or []

    async def health_check(self) -> bool:
        """
        Check database connection health.

        Returns:
            True if database is accessible, False otherwise.
        """
        try:
            await self._execute(
                self.client.table("gas_logs").select("id").limit(1),
                "health_check",
            )
            logger.debug("Database health check: OK")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            self._is_connected = False
            return False

    # =========================================================================
    # Pipeline Reads
    # =========================================================================

    async def get_enabled_auto_reply_rules(self) -> list[dict]:
        """Get every rule that switches auto-reply on, across all users."""
        return await self._execute(
            self.client.table("gas_rules").select("*")
            .eq("rule_key", "auto_reply")
            .eq("rule_value", "enabled")
            .order("created_at"),
            "get_enabled_auto_reply_rules",
        )

    async def get_user_rules(self, user_id: str) -> list[dict]:
        """Get all rules owned by a user."""
        return await self._execute(
            self.client.table("gas_rules").select("*").eq("user_id", user_id),
            "get_user_rules",
        )

    async def get_active_personas(self, user_id: str) -> list[dict]:
        """
        Get a user's active personas, oldest first.

        Ordering by ``created_at`` then ``id`` makes "first active persona"
        deterministic.
        """
        return await self._execute(
            self.client.table("gas_personas").select("*")
            .eq("user_id", user_id)
            .eq("active", True)
            .order("created_at")
            .order("id"),
            "get_active_personas",
        )

    async def get_persona(self, persona_id: str, user_id: str) -> Optional[dict]:
        """Get a persona by id, only if owned by ``user_id``."""
        rows = await self._execute(
            self.client.table("gas_personas").select("*")
            .eq("id", persona_id)
            .eq("user_id", user_id)
            .limit(1),
            "get_persona",
        )
        return rows[0] if rows else None

    async def get_template(self, template_id: str, user_id: str) -> Optional[dict]:
        """Get a template by its template_id, only if owned by ``user_id``."""
        rows = await self._execute(
            self.client.table("gas_templates").select("*")
            .eq("template_id", template_id)
            .eq("user_id", user_id)
            .limit(1),
            "get_template",
        )
        return rows[0] if rows else None

    async def get_active_templates(self, user_id: str, persona_name: str) -> list[dict]:
        """Get active templates attached to a persona, oldest first."""
        return await self._execute(
            self.client.table("gas_templates").select("*")
            .eq("user_id", user_id)
            .eq("persona", persona_name)
            .eq("active", True)
            .order("created_at"),
            "get_active_templates",
        )

    async def get_ng_words(self, user_id: str) -> list[str]:
        """Get a user's NG words."""
        rows = await self._execute(
            self.client.table("gas_ng_words").select("ng_word").eq("user_id", user_id),
            "get_ng_words",
        )
        return [row["ng_word"] for row in rows if row.get("ng_word")]

    async def is_banned(
        self,
        user_id: str,
        target_user_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Check whether a user has banned a platform account.

        A ban without ``banned_until`` is permanent.
        """
        now = now or datetime.now(timezone.utc)
        rows = await self._execute(
            self.client.table("gas_banlist").select("banned_until")
            .eq("user_id", user_id)
            .eq("target_user_id", target_user_id),
            "is_banned",
        )
        for row in rows:
            until = row.get("banned_until")
            if not until:
                return True
            if parse_timestamp(until) > now:
                return True
        return False

    async def get_active_webhook_configs(self) -> list[dict]:
        """Get every active webhook config (secrets for verification)."""
        return await self._execute(
            self.client.table("gas_webhook_config").select("*").eq("is_active", True),
            "get_active_webhook_configs",
        )

    # =========================================================================
    # Data Management Writes
    # =========================================================================

    async def _save(self, table: str, row: dict, action: str) -> list[dict]:
        """
        Upsert ``row``; a supplied ``id`` must belong to ``row["user_id"]``.

        Raises:
            NotFoundError: ``id`` given but not owned by the caller.
        """
        if "id" in row:
            owned = await self._execute(
                self.client.table(table).select("id")
                .eq("id", row["id"])
                .eq("user_id", row["user_id"]),
                action,
            )
            if not owned:
                raise NotFoundError(f"No such row in {table}")
        return await self._execute(self.client.table(table).upsert(row), action)

    async def upsert_persona(self, user_id: str, data: dict) -> list[dict]:
        """Create or update a persona owned by ``user_id``."""
        row = build_row(user_id, data, PERSONA_FIELDS)
        row.setdefault("recent_posts", [])
        row.setdefault("active", True)
        rows = await self._save("gas_personas", row, "upsert_persona")
        logger.info(f"Saved persona '{row.get('name')}' for user {user_id}")
        return rows

    async def upsert_rule(self, user_id: str, data: dict) -> list[dict]:
        """Create or update a rule owned by ``user_id``."""
        row = build_row(user_id, data, RULE_FIELDS)
        rows = await self._save("gas_rules", row, "upsert_rule")
        logger.info(f"Saved rule '{row.get('rule_key')}' for user {user_id}")
        return rows

    async def upsert_setting(self, user_id: str, data: dict) -> list[dict]:
        """Create or update a setting owned by ``user_id``."""
        row = build_row(user_id, data, SETTING_FIELDS)
        row.setdefault("setting_type", "string")
        rows = await self._save("gas_settings", row, "upsert_setting")
        logger.info(f"Saved setting '{row.get('setting_key')}' for user {user_id}")
        return rows

    async def upsert_webhook_config(self, user_id: str, data: dict) -> list[dict]:
        """Create or update a webhook config owned by ``user_id``."""
        row = build_row(user_id, data, WEBHOOK_CONFIG_FIELDS)
        row.setdefault("is_active", True)
        rows = await self._save("gas_webhook_config", row, "upsert_webhook_config")
        logger.info(f"Saved webhook config for app {row.get('app_id')} (user {user_id})")
        return rows

    async def record_webhook_test(self, user_id: str, status: str) -> None:
        """Stamp the result of a connection test on the user's webhook configs."""
        await self._execute(
            self.client.table("gas_webhook_config").update({
                "test_status": status,
                "last_test_at": datetime.now(timezone.utc).isoformat(),
            }).eq("user_id", user_id),
            "record_webhook_test",
        )

    # =========================================================================
    # Audit Log
    # =========================================================================

    async def insert_log(self, row: dict) -> dict:
        """Append one audit row. Logs are never updated or deleted."""
        rows = await self._execute(
            self.client.table("gas_logs").insert(row), "insert_log"
        )
        return rows[0] if rows else row

    async def get_logs(
        self,
        user_id: str,
        event_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get a user's audit rows, newest first."""
        query = self.client.table("gas_logs").select("*").eq("user_id", user_id)
        if event_id:
            query = query.eq("event_id", event_id)
        return await self._execute(
            query.order("created_at", desc=True).limit(limit), "get_logs"
        )
