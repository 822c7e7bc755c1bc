"""
Auto-Reply Orchestrator - turns one InboundEvent into replies and an audit trail.

Flow for a single event:
    ┌─────────────────────────────────────────────────────────────┐
    │  1. Fetch post context from Threads       (error → stop)    │
    │  2. Log `received`                        (system owner)    │
    │  3. Find users with auto_reply = enabled  (none → stop)     │
    │  4. Per user, concurrently and isolated:                    │
    │     a. keyword / NG word / ban-list filter (skip quietly)   │
    │     b. pick earliest active persona        (none → skip)    │
    │     c. log `processing`                                     │
    │     d. pick template, generate reply                        │
    │     e. log `success` or `error`                             │
    └─────────────────────────────────────────────────────────────┘

Every LogEntry for the event shares ``event.event_id`` and carries the
delivery id in its metadata, so a redelivered payload appends a second,
distinguishable set of rows.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from src.errors import AIGenerationError, ThreadsAutoReplyError
from src.models import InboundEvent, LogEntry, LogStatus, Persona, Template

if TYPE_CHECKING:
    from src.ai_client import AIClient
    from src.audit_logger import AuditLogger
    from src.reply_filter import ReplyFilter
    from src.threads_client import ThreadsClient

logger = logging.getLogger(__name__)

# Provider bodies can be large HTML error pages
MAX_RAW_BODY = 1000


@dataclass
class UserOutcome:
    """What happened for one matching user."""
    user_id: str
    status: str  # "success", "error" or "skipped"
    reason: Optional[str] = None
    reply: Optional[str] = None


def select_persona(rows: list[dict]) -> Optional[Persona]:
    """Earliest ``created_at`` wins; ``id`` breaks ties."""
    active = [row for row in rows if row.get("active", True)]
    if not active:
        return None
    first = min(active, key=lambda row: (str(row.get("created_at") or ""), str(row["id"])))
    return Persona.from_row(first)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class AutoReplyOrchestrator:
    """
    Runs the auto-reply pipeline for inbound mention/reply events.

    Collaborators are injected so each can be replaced in tests.
    """

    def __init__(
        self,
        db,
        threads: "ThreadsClient",
        ai: "AIClient",
        audit: "AuditLogger",
        reply_filter: Optional["ReplyFilter"] = None,
        system_user_id: str = "00000000-0000-0000-0000-000000000000",
    ) -> None:
        self.db = db
        self.threads = threads
        self.ai = ai
        self.audit = audit
        self.reply_filter = reply_filter
        self.system_user_id = system_user_id

    async def process(self, event: InboundEvent) -> list[UserOutcome]:
        """
        Process one inbound event end to end.

        Never raises for pipeline failures; they are written to the audit
        log instead.

        Returns:
            One UserOutcome per user with an enabled auto_reply rule
            (empty if the pipeline stopped before user resolution).
        """
        metadata = {"delivery_id": event.delivery_id, "kind": event.kind.value}
        logger.info(f"Processing {event.event_id} (delivery {event.delivery_id})")

        # 1. Post context
        try:
            post = await self.threads.get_post(event.external_post_id)
        except Exception as e:
            logger.error(f"Failed to fetch post {event.external_post_id}: {e}")
            await self.audit.record(LogEntry(
                user_id=self.system_user_id,
                event_id=event.event_id,
                status=LogStatus.ERROR,
                text=event.raw_text or None,
                error_message=f"Failed to fetch post context: {e}",
                thread_id=event.external_post_id,
                target_user_id=event.username,
                metadata={**metadata, "stage": "fetch_post"},
            ))
            return []

        text = post.get("text") or event.raw_text
        username = post.get("username") or event.username

        # 2. Received
        await self.audit.record(LogEntry(
            user_id=self.system_user_id,
            event_id=event.event_id,
            status=LogStatus.RECEIVED,
            text=text,
            thread_id=event.external_post_id,
            target_user_id=username,
            metadata={**metadata, "timestamp": post.get("timestamp") or event.timestamp},
        ))

        # 3. Enabled rules
        try:
            rules = await self.db.get_enabled_auto_reply_rules()
        except Exception as e:
            logger.error(f"Failed to load auto_reply rules for {event.event_id}: {e}")
            await self.audit.record(LogEntry(
                user_id=self.system_user_id,
                event_id=event.event_id,
                status=LogStatus.ERROR,
                text=text,
                error_message=f"Failed to load auto_reply rules: {e}",
                thread_id=event.external_post_id,
                target_user_id=username,
                metadata={**metadata, "stage": "load_rules"},
            ))
            return []

        user_ids = list(dict.fromkeys(str(rule["user_id"]) for rule in rules))
        if not user_ids:
            logger.info(f"No active auto_reply rule; {event.event_id} ends here")
            return []

        # 4. Per user, isolated
        results = await asyncio.gather(
            *(self._process_user(event, user_id, text, username, metadata) for user_id in user_ids),
            return_exceptions=True,
        )

        outcomes = []
        for user_id, result in zip(user_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Unexpected failure for user {user_id} on {event.event_id}: {result}")
                outcomes.append(UserOutcome(user_id=user_id, status="error", reason=str(result)))
            else:
                outcomes.append(result)
        return outcomes

    async def _process_user(
        self,
        event: InboundEvent,
        user_id: str,
        text: str,
        username: Optional[str],
        metadata: dict,
    ) -> UserOutcome:
        started = time.monotonic()
        persona: Optional[Persona] = None
        template: Optional[Template] = None

        try:
            if self.reply_filter:
                verdict = await self.reply_filter.check(user_id, text, username)
                if not verdict.allowed:
                    logger.info(f"Skipping {event.event_id} for user {user_id}: {verdict.reason}")
                    return UserOutcome(user_id=user_id, status="skipped", reason=verdict.reason)

            persona = select_persona(await self.db.get_active_personas(user_id))
            if persona is None:
                logger.info(f"Skipping {event.event_id} for user {user_id}: no active persona")
                return UserOutcome(user_id=user_id, status="skipped", reason="no active persona")

            await self.audit.record(LogEntry(
                user_id=user_id,
                event_id=event.event_id,
                status=LogStatus.PROCESSING,
                text=text,
                persona=persona.name,
                thread_id=event.external_post_id,
                target_user_id=username,
                metadata=dict(metadata),
            ))

            template = await self._select_template(user_id, persona.name)
            generated = await self.ai.generate_reply(text, persona, template)

        except Exception as e:
            latency = _elapsed_ms(started)
            error_metadata = {**metadata}
            if isinstance(e, AIGenerationError):
                error_metadata["provider_status"] = e.provider_status
                if e.raw_body:
                    error_metadata["provider_body"] = e.raw_body[:MAX_RAW_BODY]
            if not isinstance(e, ThreadsAutoReplyError):
                logger.exception(f"Unexpected error for user {user_id} on {event.event_id}")
            else:
                logger.error(f"Reply failed for user {user_id} on {event.event_id}: {e}")

            message = str(e) or type(e).__name__
            await self.audit.record(LogEntry(
                user_id=user_id,
                event_id=event.event_id,
                status=LogStatus.ERROR,
                text=text,
                error_message=message,
                persona=persona.name if persona else None,
                template_id=template.template_id if template else None,
                thread_id=event.external_post_id,
                target_user_id=username,
                latency_ms=latency,
                metadata=error_metadata,
            ))
            return UserOutcome(user_id=user_id, status="error", reason=message)

        latency = _elapsed_ms(started)
        await self.audit.record(LogEntry(
            user_id=user_id,
            event_id=event.event_id,
            status=LogStatus.SUCCESS,
            text=text,
            reply=generated.reply,
            persona=generated.persona_name,
            template_id=generated.template_id,
            thread_id=event.external_post_id,
            target_user_id=username,
            latency_ms=latency,
            metadata={**metadata, **generated.metadata},
        ))
        logger.info(
            f"Generated reply for {event.event_id} as {persona.name} "
            f"(user {user_id}, {latency}ms)"
        )
        return UserOutcome(user_id=user_id, status="success", reply=generated.reply)

    async def _select_template(self, user_id: str, persona_name: str) -> Optional[Template]:
        rows = await self.db.get_active_templates(user_id, persona_name)
        return Template.from_row(rows[0]) if rows else None
