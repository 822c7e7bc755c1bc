"""
Webhook Receiver - the platform-facing entry point.

Routes:
    GET  /threads-webhook   Setup handshake: echo ``hub.challenge`` when
                            ``hub.verify_token`` matches a configured secret.
    POST /threads-webhook   Event delivery: parse, verify the
                            ``X-Hub-Signature-256`` HMAC, enqueue, reply ``OK``.

Deliveries are acknowledged as soon as their events are queued. Post
fetches and AI calls happen afterwards in the background worker, so
downstream failures never reach the platform as non-200 responses.

Payload shape:
    {"object": "threads",
     "entry": [{"changes": [{"field": "mentions",
                             "value": {"media_id": "...", "text": "...",
                                       "timestamp": "...", "username": "..."}}]}]}
"""

import hashlib
import hmac
import json
import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse

from src.auth import get_services
from src.errors import (
    AuthenticationError,
    ThreadsAutoReplyError,
    ValidationError,
    VerificationError,
)
from src.models import EventKind, InboundEvent

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-Hub-Signature-256"
ACCEPTED_OBJECTS = ("thread", "threads")


# =============================================================================
# Payload Parsing
# =============================================================================

def parse_payload(payload: Any, delivery_id: Optional[str] = None) -> list[InboundEvent]:
    """
    Extract mention/reply events from a decoded webhook body.

    Unknown ``object`` values and unhandled ``field`` values are ignored.
    All events from one delivery share ``delivery_id``.

    Raises:
        ValidationError: Body is not an object, or ``entry``/``changes``
            are not lists.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook body must be a JSON object")

    entries = payload.get("entry", [])
    if not isinstance(entries, list):
        raise ValidationError("'entry' must be a list")

    if payload.get("object") not in ACCEPTED_OBJECTS:
        logger.info(f"Ignoring webhook for object {payload.get('object')!r}")
        return []

    delivery_id = delivery_id or uuid.uuid4().hex
    events = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError("'entry' items must be objects")
        changes = entry.get("changes", [])
        if not isinstance(changes, list):
            raise ValidationError("'changes' must be a list")

        for change in changes:
            if not isinstance(change, dict):
                continue
            kind = EventKind.from_field(change.get("field", ""))
            value = change.get("value")
            if kind is None or not isinstance(value, dict):
                continue
            media_id = value.get("media_id")
            if not media_id:
                continue
            events.append(InboundEvent(
                kind=kind,
                external_post_id=str(media_id),
                raw_text=value.get("text") or "",
                timestamp=value.get("timestamp"),
                username=value.get("username"),
                delivery_id=delivery_id,
                raw=change,
            ))
    return events


# =============================================================================
# Verification
# =============================================================================

def verify_signature(body: bytes, signature: Optional[str], secrets: list[str]) -> bool:
    """Check ``sha256=<hex>`` against an HMAC-SHA256 of the raw body for any secret."""
    if not signature:
        return False
    for secret in secrets:
        if not secret:
            continue
        expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        if hmac.compare_digest(f"sha256={expected}", signature):
            return True
    return False


def verify_token(token: str, candidates: list[str]) -> bool:
    """Constant-time comparison of the handshake token against every candidate."""
    matched = False
    for candidate in candidates:
        if candidate and hmac.compare_digest(candidate.encode(), token.encode()):
            matched = True
    return matched


async def _configured_secrets(db) -> list[str]:
    """Shared secrets of active webhook configs; a store outage yields none."""
    try:
        configs = await db.get_active_webhook_configs()
    except ThreadsAutoReplyError as e:
        logger.warning(f"Could not load webhook configs: {e}")
        return []
    return [c["hmac_secret"] for c in configs if c.get("hmac_secret")]


# =============================================================================
# Routes
# =============================================================================

@router.get("/threads-webhook")
async def verify_webhook(
    challenge: Optional[str] = Query(None, alias="hub.challenge"),
    token: Optional[str] = Query(None, alias="hub.verify_token"),
    services=Depends(get_services),
):
    if challenge is None or token is None:
        raise ValidationError("hub.challenge and hub.verify_token are required")

    candidates = [services.settings.webhook_verify_token]
    candidates.extend(await _configured_secrets(services.db))

    if not verify_token(token, candidates):
        logger.warning("Webhook verification failed: verify token mismatch")
        raise VerificationError("Verification failed")

    logger.info("Webhook verification handshake succeeded")
    return PlainTextResponse(challenge)


@router.post("/threads-webhook")
async def receive_webhook(request: Request, services=Depends(get_services)):
    body = await request.body()
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise ValidationError("Invalid JSON body") from e
    events = parse_payload(payload)

    settings = services.settings
    if not settings.webhook_allow_unsigned:
        secrets = [settings.threads_app_secret]
        secrets.extend(await _configured_secrets(services.db))
        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secrets):
            logger.warning("Rejected webhook delivery with missing or invalid signature")
            raise AuthenticationError("Invalid signature")

    for event in events:
        await services.events.submit(event)

    if events:
        logger.info(f"Accepted {len(events)} event(s) from webhook delivery")
    return PlainTextResponse("OK")
