"""
SQLite Database - Local fallback for Supabase.

This module provides a SQLite-based store for local development and testing,
or as a fallback when Supabase is unavailable. Table and column names match
the Supabase schema so rows look the same to the rest of the service.
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from src.database import (
    PERSONA_FIELDS,
    RULE_FIELDS,
    SETTING_FIELDS,
    WEBHOOK_CONFIG_FIELDS,
    build_row,
)
from src.errors import ExternalServiceError, NotFoundError, ValidationError
from src.models import parse_timestamp

logger = logging.getLogger(__name__)

# Default SQLite database path
DEFAULT_DB_PATH = Path("threads_autoreply.db")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS gas_personas (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL,
        display_name TEXT NOT NULL,
        style TEXT NOT NULL,
        recent_posts TEXT DEFAULT '[]',
        active INTEGER DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (user_id, name)
    );

    CREATE TABLE IF NOT EXISTS gas_rules (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        rule_key TEXT NOT NULL,
        rule_value TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS gas_settings (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        setting_key TEXT NOT NULL,
        setting_value TEXT,
        setting_type TEXT DEFAULT 'string',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS gas_templates (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        template_id TEXT NOT NULL,
        persona TEXT NOT NULL,
        intent TEXT NOT NULL,
        body TEXT NOT NULL,
        cta TEXT,
        hashtags TEXT,
        min_len INTEGER,
        max_len INTEGER,
        active INTEGER DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS gas_webhook_config (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        app_id TEXT NOT NULL,
        gas_webapp_url TEXT NOT NULL,
        hmac_secret TEXT NOT NULL,
        is_active INTEGER DEFAULT 1,
        test_status TEXT,
        last_test_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS gas_logs (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        event_id TEXT NOT NULL,
        status TEXT NOT NULL,
        text TEXT,
        reply TEXT,
        error_message TEXT,
        persona TEXT,
        template_id TEXT,
        thread_id TEXT,
        target_user_id TEXT,
        latency_ms INTEGER,
        metadata TEXT,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS gas_ng_words (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        ng_word TEXT NOT NULL,
        action TEXT DEFAULT 'skip',
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS gas_banlist (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        target_user_id TEXT NOT NULL,
        reason TEXT,
        banned_until TEXT,
        created_at TEXT NOT NULL
    );
"""

BOOLEAN_COLUMNS = ("active", "is_active")
JSON_COLUMNS = ("recent_posts", "metadata")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteDatabase:
    """
    SQLite implementation of the store interface.

    Provides the same API as the Supabase Database class for seamless fallback.
    """

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH):
        """Initialize SQLite database. Pass ``":memory:"`` for a throwaway store."""
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        self._is_connected = False

        self._connect()
        self._create_tables()
        logger.info(f"SQLite database initialized: {db_path}")

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._is_connected = True
            logger.info("SQLite connection established")
        except Exception as e:
            logger.error(f"Failed to connect to SQLite: {e}")
            self._is_connected = False
            raise

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self.conn.executescript(SCHEMA)
        self.conn.commit()
        logger.info("SQLite tables created/verified")

    async def _ensure_connection(self) -> None:
        """Ensure database connection is active."""
        if not self._is_connected or self.conn is None:
            self._connect()

    def _to_dict(self, row: sqlite3.Row) -> dict:
        """Convert a row to the shape Supabase returns."""
        data = dict(row)
        for column in BOOLEAN_COLUMNS:
            if column in data and data[column] is not None:
                data[column] = bool(data[column])
        for column in JSON_COLUMNS:
            if isinstance(data.get(column), str):
                data[column] = json.loads(data[column])
        return data

    def _to_db(self, value: Any) -> Any:
        if isinstance(value, (list, dict)):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, bool):
            return int(value)
        return value

    async def _query(self, sql: str, params: tuple = ()) -> list[dict]:
        await self._ensure_connection()
        try:
            cursor = self.conn.execute(sql, params)
            return [self._to_dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"SQLite query failed: {e}")
            raise ExternalServiceError(f"Database error: {e}") from e

    async def _upsert(self, table: str, row: dict) -> list[dict]:
        """
        Insert a row, or update it in place when the caller supplied the id
        of a row it owns.

        Raises:
            NotFoundError: ``id`` given but no row with that id belongs to ``user_id``.
        """
        await self._ensure_connection()
        now = _now()
        row = dict(row)
        row["updated_at"] = now

        try:
            if "id" in row:
                owned = self.conn.execute(
                    f"SELECT 1 FROM {table} WHERE id = ? AND user_id = ?",
                    (row["id"], row["user_id"]),
                ).fetchone()
                if not owned:
                    raise NotFoundError(f"No such row in {table}")
                columns = [c for c in row if c not in ("id", "user_id")]
                assignments = ", ".join(f"{c} = ?" for c in columns)
                self.conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ? AND user_id = ?",
                    tuple(self._to_db(row[c]) for c in columns) + (row["id"], row["user_id"]),
                )
            else:
                row["id"] = str(uuid.uuid4())
                row["created_at"] = now
                columns = list(row)
                placeholders = ", ".join("?" for _ in columns)
                self.conn.execute(
                    f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                    tuple(self._to_db(row[c]) for c in columns),
                )
            self.conn.commit()
        except sqlite3.IntegrityError as e:
            self.conn.rollback()
            raise ValidationError(str(e)) from e
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"SQLite upsert into {table} failed: {e}")
            raise ExternalServiceError(f"Database error: {e}") from e

        return await self._query(f"SELECT * FROM {table} WHERE id = ?", (row["id"],))

    async def health_check(self) -> bool:
        """Check database connection health."""
        try:
            await self._ensure_connection()
            self.conn.execute("SELECT 1")
            return True
        except Exception as e:
            logger.error(f"SQLite health check failed: {e}")
            return False

    # =========================================================================
    # Pipeline Reads
    # =========================================================================

    async def get_enabled_auto_reply_rules(self) -> list[dict]:
        return await self._query(
            "SELECT * FROM gas_rules WHERE rule_key = 'auto_reply' AND rule_value = 'enabled' "
            "ORDER BY created_at"
        )

    async def get_user_rules(self, user_id: str) -> list[dict]:
        return await self._query("SELECT * FROM gas_rules WHERE user_id = ?", (user_id,))

    async def get_active_personas(self, user_id: str) -> list[dict]:
        return await self._query(
            "SELECT * FROM gas_personas WHERE user_id = ? AND active = 1 "
            "ORDER BY created_at, id",
            (user_id,),
        )

    async def get_persona(self, persona_id: str, user_id: str) -> Optional[dict]:
        rows = await self._query(
            "SELECT * FROM gas_personas WHERE id = ? AND user_id = ?",
            (persona_id, user_id),
        )
        return rows[0] if rows else None

    async def get_template(self, template_id: str, user_id: str) -> Optional[dict]:
        rows = await self._query(
            "SELECT * FROM gas_templates WHERE template_id = ? AND user_id = ? LIMIT 1",
            (template_id, user_id),
        )
        return rows[0] if rows else None

    async def get_active_templates(self, user_id: str, persona_name: str) -> list[dict]:
        return await self._query(
            "SELECT * FROM gas_templates WHERE user_id = ? AND persona = ? AND active = 1 "
            "ORDER BY created_at",
            (user_id, persona_name),
        )

    async def get_ng_words(self, user_id: str) -> list[str]:
        rows = await self._query(
            "SELECT ng_word FROM gas_ng_words WHERE user_id = ?", (user_id,)
        )
        return [row["ng_word"] for row in rows if row["ng_word"]]

    async def is_banned(
        self,
        user_id: str,
        target_user_id: str,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or datetime.now(timezone.utc)
        rows = await self._query(
            "SELECT banned_until FROM gas_banlist WHERE user_id = ? AND target_user_id = ?",
            (user_id, target_user_id),
        )
        return any(
            not row["banned_until"] or parse_timestamp(row["banned_until"]) > now
            for row in rows
        )

    async def get_active_webhook_configs(self) -> list[dict]:
        return await self._query("SELECT * FROM gas_webhook_config WHERE is_active = 1")

    # =========================================================================
    # Data Management Writes
    # =========================================================================

    async def upsert_persona(self, user_id: str, data: dict) -> list[dict]:
        row = build_row(user_id, data, PERSONA_FIELDS)
        row.setdefault("recent_posts", [])
        row.setdefault("active", True)
        return await self._upsert("gas_personas", row)

    async def upsert_rule(self, user_id: str, data: dict) -> list[dict]:
        return await self._upsert("gas_rules", build_row(user_id, data, RULE_FIELDS))

    async def upsert_setting(self, user_id: str, data: dict) -> list[dict]:
        row = build_row(user_id, data, SETTING_FIELDS)
        row.setdefault("setting_type", "string")
        return await self._upsert("gas_settings", row)

    async def upsert_webhook_config(self, user_id: str, data: dict) -> list[dict]:
        row = build_row(user_id, data, WEBHOOK_CONFIG_FIELDS)
        row.setdefault("is_active", True)
        return await self._upsert("gas_webhook_config", row)

    async def upsert_template(self, user_id: str, data: dict) -> list[dict]:
        """Templates are managed from the dashboard directly; used for seeding."""
        fields = ("template_id", "persona", "intent", "body", "cta", "hashtags",
                  "min_len", "max_len", "active")
        row = build_row(user_id, data, fields)
        row.setdefault("active", True)
        return await self._upsert("gas_templates", row)

    async def add_ng_word(self, user_id: str, ng_word: str, action: str = "skip") -> None:
        await self._ensure_connection()
        self.conn.execute(
            "INSERT INTO gas_ng_words (id, user_id, ng_word, action, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (str(uuid.uuid4()), user_id, ng_word, action, _now()),
        )
        self.conn.commit()

    async def add_ban(
        self,
        user_id: str,
        target_user_id: str,
        banned_until: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> None:
        await self._ensure_connection()
        self.conn.execute(
            "INSERT INTO gas_banlist (id, user_id, target_user_id, reason, banned_until, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                user_id,
                target_user_id,
                reason,
                banned_until.isoformat() if banned_until else None,
                _now(),
            ),
        )
        self.conn.commit()

    async def record_webhook_test(self, user_id: str, status: str) -> None:
        await self._ensure_connection()
        self.conn.execute(
            "UPDATE gas_webhook_config SET test_status = ?, last_test_at = ? WHERE user_id = ?",
            (status, _now(), user_id),
        )
        self.conn.commit()

    # =========================================================================
    # Audit Log
    # =========================================================================

    async def insert_log(self, row: dict) -> dict:
        await self._ensure_connection()
        row = dict(row)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _now())
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)
        try:
            self.conn.execute(
                f"INSERT INTO gas_logs ({', '.join(columns)}) VALUES ({placeholders})",
                tuple(self._to_db(row[c]) for c in columns),
            )
            self.conn.commit()
        except sqlite3.Error as e:
            self.conn.rollback()
            raise ExternalServiceError(f"Database error: {e}") from e
        return row

    async def get_logs(
        self,
        user_id: str,
        event_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict]:
        if event_id:
            return await self._query(
                "SELECT * FROM gas_logs WHERE user_id = ? AND event_id = ? "
                "ORDER BY created_at DESC LIMIT ?",
                (user_id, event_id, limit),
            )
        return await self._query(
            "SELECT * FROM gas_logs WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
            (user_id, limit),
        )

    async def get_all_logs(self) -> list[dict]:
        """Every audit row in insertion order, across owners."""
        return await self._query("SELECT * FROM gas_logs ORDER BY rowid")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            self._is_connected = False
