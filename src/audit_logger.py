"""
Audit Logger - append-only LogEntry writer.

LogEntries are what the dashboard's log viewer shows. Writing one must
never abort the pipeline: a failed write is reported to the operator
channel and the caller carries on as if it had succeeded.
"""

import logging
from typing import Optional, TYPE_CHECKING

from src.models import LogEntry

if TYPE_CHECKING:
    from src.alerts import AlertManager

logger = logging.getLogger(__name__)


class AuditLogger:
    """Appends LogEntries to the store's ``gas_logs`` table."""

    def __init__(self, db, alerts: Optional["AlertManager"] = None) -> None:
        """
        Args:
            db: Store exposing ``insert_log(row)``.
            alerts: Operator error channel for write failures.
        """
        self.db = db
        self.alerts = alerts

    async def record(self, entry: LogEntry) -> bool:
        """
        Append one entry. Duplicate ``event_id`` values are ordinary appends.

        Returns:
            True if the row was stored, False if the write failed.
        """
        try:
            await self.db.insert_log(entry.to_row())
            logger.debug(f"Audit {entry.status.value} for {entry.event_id} (user {entry.user_id})")
            return True
        except Exception as e:
            logger.error(f"Failed to write audit log for {entry.event_id}: {e}")
            if self.alerts:
                try:
                    await self.alerts.error(
                        "audit_write_failed",
                        f"Could not store {entry.status.value} log entry",
                        event_id=entry.event_id,
                        user_id=entry.user_id,
                        error=str(e),
                    )
                except Exception as alert_error:
                    logger.error(f"Failed to report audit failure: {alert_error}")
            return False
