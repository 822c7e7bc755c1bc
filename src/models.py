"""
Core data structures shared by the webhook, orchestrator, and store layers.

Store rows travel as plain dicts; these dataclasses give the pipeline a
typed view of the rows it actually reasons about.
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class EventKind(Enum):
    """Kinds of inbound platform events handled by the pipeline."""
    MENTION = "mention"
    REPLY = "reply"

    @classmethod
    def from_field(cls, field_name: str) -> Optional["EventKind"]:
        """Map a webhook change ``field`` to an event kind, or None if unhandled."""
        return _FIELD_TO_KIND.get(field_name)


_FIELD_TO_KIND = {
    "mentions": EventKind.MENTION,
    "replies": EventKind.REPLY,
}


class LogStatus(Enum):
    """Audit log statuses, in pipeline order."""
    RECEIVED = "received"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse a store timestamp; naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_list(value: Any) -> list[str]:
    """Example posts are JSON in the store; SQLite hands them back as text."""
    if not value:
        return []
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return [value]
    return [str(item) for item in value if item]


@dataclass(frozen=True)
class InboundEvent:
    """
    Normalized mention/reply notification from the platform.

    ``delivery_id`` is fresh for every webhook delivery, so a redelivered
    payload yields the same ``event_id`` but a distinguishable log set.
    """
    kind: EventKind
    external_post_id: str
    raw_text: str = ""
    timestamp: Optional[str] = None
    username: Optional[str] = None
    delivery_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def event_id(self) -> str:
        return f"{self.kind.value}_{self.external_post_id}"


@dataclass(frozen=True)
class Persona:
    """AI voice profile. ``name`` is the stable lookup key."""
    id: str
    user_id: str
    name: str
    display_name: str
    style: str
    recent_posts: list[str] = field(default_factory=list)
    active: bool = True
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "Persona":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            display_name=row.get("display_name") or row["name"],
            style=row.get("style") or "",
            recent_posts=_parse_list(row.get("recent_posts")),
            active=bool(row.get("active", True)),
            created_at=row.get("created_at"),
        )


@dataclass(frozen=True)
class Template:
    """Structured prompt constraints attached to a persona."""
    id: str
    user_id: str
    template_id: str
    persona: str
    intent: str
    body: str
    cta: Optional[str] = None
    min_len: Optional[int] = None
    max_len: Optional[int] = None
    active: bool = True

    @classmethod
    def from_row(cls, row: dict) -> "Template":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            template_id=row["template_id"],
            persona=row.get("persona") or "",
            intent=row.get("intent") or "",
            body=row.get("body") or "",
            cta=row.get("cta"),
            min_len=row.get("min_len"),
            max_len=row.get("max_len"),
            active=bool(row.get("active", True)),
        )


@dataclass(frozen=True)
class GeneratedReply:
    """Output of the reply generator."""
    reply: str
    model: str
    persona_name: str
    template_id: Optional[str] = None

    @property
    def metadata(self) -> dict:
        return {
            "model": self.model,
            "persona_used": self.persona_name,
            "template_used": self.template_id,
        }


@dataclass(frozen=True)
class LogEntry:
    """
    Immutable audit record of one pipeline step.

    Entries are only ever appended; the same ``event_id`` may appear many
    times (one per step, and again for every redelivery).
    """
    user_id: str
    event_id: str
    status: LogStatus
    text: Optional[str] = None
    reply: Optional[str] = None
    error_message: Optional[str] = None
    persona: Optional[str] = None
    template_id: Optional[str] = None
    thread_id: Optional[str] = None
    target_user_id: Optional[str] = None
    latency_ms: Optional[int] = None
    metadata: dict = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> dict:
        """Serialize for the ``gas_logs`` table."""
        row = asdict(self)
        row["status"] = self.status.value
        row["created_at"] = self.created_at.isoformat()
        return row
