"""
Data-management and AI reply APIs for the dashboard.

Routes (all require ``Authorization: Bearer <session token>``):
    POST /data-management   {"action": "...", ...fields} → {"success": true, "data": ...}
    POST /ai-reply          {"text", "persona_id", "template_id"?} → {"success", "reply", "metadata"}
    GET  /logs              ?event_id=&limit= → {"success": true, "data": [...]}, newest first

Every write is scoped to the caller's user id. Errors are rendered by
the application's exception handlers as ``{"error": ...}``.
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from config import SettingValidator
from src.auth import current_user, get_services
from src.errors import (
    AIGenerationError,
    ExternalServiceError,
    NotFoundError,
    ThreadsAutoReplyError,
    ValidationError,
)
from src.models import LogEntry, LogStatus, Persona, Template
from src.orchestrator import MAX_RAW_BODY

logger = logging.getLogger(__name__)

router = APIRouter()


class Action(Enum):
    """Data-management actions accepted by ``POST /data-management``."""
    SAVE_PERSONA = "save_persona"
    SAVE_RULE = "save_rule"
    SAVE_SETTINGS = "save_settings"
    SAVE_WEBHOOK_CONFIG = "save_webhook_config"
    TEST_THREADS_CONNECTION = "test_threads_connection"


# =============================================================================
# Request Models
# =============================================================================

class PersonaData(BaseModel):
    id: Optional[str] = None
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    style: str = ""
    recent_posts: list[str] = Field(default_factory=list)
    active: bool = True


class RuleData(BaseModel):
    id: Optional[str] = None
    rule_key: str = Field(min_length=1)
    rule_value: str
    description: Optional[str] = None


class SettingData(BaseModel):
    id: Optional[str] = None
    setting_key: str = Field(min_length=1)
    setting_value: Any = None
    setting_type: str = "string"


class WebhookConfigData(BaseModel):
    id: Optional[str] = None
    app_id: str = Field(min_length=1)
    gas_webapp_url: str = Field(min_length=1)
    hmac_secret: str = Field(min_length=1)
    is_active: bool = True


class AIReplyRequest(BaseModel):
    text: str = Field(min_length=1)
    persona_id: str = Field(min_length=1)
    template_id: Optional[str] = None


def _parse(model: type[BaseModel], data: dict) -> BaseModel:
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid field '{location}': {first['msg']}") from e


def _validate(model: type[BaseModel], data: dict) -> dict:
    """Validate ``data`` against ``model`` and return the row fields, dropping nulls."""
    return _parse(model, data).model_dump(exclude_none=True)


def _now_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# Action Handlers
# =============================================================================

async def save_persona(services, user_id: str, data: dict) -> dict:
    rows = await services.db.upsert_persona(user_id, _validate(PersonaData, data))
    return {"success": True, "data": rows}


async def save_rule(services, user_id: str, data: dict) -> dict:
    rows = await services.db.upsert_rule(user_id, _validate(RuleData, data))
    return {"success": True, "data": rows}


async def save_settings(services, user_id: str, data: dict) -> dict:
    row = _validate(SettingData, data)
    try:
        row["setting_value"] = SettingValidator.validate_setting(
            row["setting_type"], row.get("setting_value")
        )
    except ValueError as e:
        raise ValidationError(str(e)) from e
    rows = await services.db.upsert_setting(user_id, row)
    return {"success": True, "data": rows}


async def save_webhook_config(services, user_id: str, data: dict) -> dict:
    rows = await services.db.upsert_webhook_config(user_id, _validate(WebhookConfigData, data))
    return {"success": True, "data": rows}


async def test_threads_connection(services, user_id: str, data: dict) -> dict:
    """
    Call the platform's ``/me`` with the configured credentials.

    The outcome is stamped on the caller's webhook configs; a success is
    audited here, a failure by the route like any other action error.
    """
    settings = services.settings
    if not (settings.threads_app_id and settings.threads_app_secret and settings.threads_access_token):
        raise ValidationError("Threads API credentials not configured", status="disconnected")

    try:
        user_data = await services.threads.get_me()
    except ThreadsAutoReplyError as e:
        await _record_test_result(services, user_id, "error")
        raise ExternalServiceError(
            "Failed to connect to Threads API",
            status="disconnected",
            details=e.message,
        ) from e

    await services.audit.record(LogEntry(
        user_id=user_id,
        event_id=f"test_connection_{_now_ms()}",
        status=LogStatus.SUCCESS,
        metadata={"action": Action.TEST_THREADS_CONNECTION.value, "threads_user": user_data},
    ))
    await _record_test_result(services, user_id, "success")
    return {"success": True, "status": "connected", "user_data": user_data}


async def _record_test_result(services, user_id: str, status: str) -> None:
    try:
        await services.db.record_webhook_test(user_id, status)
    except ThreadsAutoReplyError as e:
        logger.warning(f"Could not record connection test for user {user_id}: {e}")


HANDLERS: dict[Action, Callable[[Any, str, dict], Awaitable[dict]]] = {
    Action.SAVE_PERSONA: save_persona,
    Action.SAVE_RULE: save_rule,
    Action.SAVE_SETTINGS: save_settings,
    Action.SAVE_WEBHOOK_CONFIG: save_webhook_config,
    Action.TEST_THREADS_CONNECTION: test_threads_connection,
}

if set(HANDLERS) != set(Action):
    raise RuntimeError(f"Actions without a handler: {set(Action) - set(HANDLERS)}")


async def _json_object(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _error_context(error: Optional[BaseException]) -> dict:
    """Provider status and body carried by a service error, if any."""
    if not isinstance(error, ThreadsAutoReplyError):
        return {}
    context = dict(error.extra)
    if isinstance(error, AIGenerationError):
        context["provider_status"] = error.provider_status
        context["raw_body"] = error.raw_body
    return {k: v for k, v in context.items() if v is not None}


async def _audit_failure(
    services,
    user_id: str,
    action: str,
    error: ThreadsAutoReplyError,
    **fields,
) -> None:
    """Append an ``error`` LogEntry for a failed dashboard request."""
    metadata = {"action": action, **_error_context(error.__cause__), **_error_context(error)}
    if isinstance(metadata.get("raw_body"), str):
        metadata["raw_body"] = metadata["raw_body"][:MAX_RAW_BODY]
    await services.audit.record(LogEntry(
        user_id=user_id,
        event_id=f"{action}_error_{_now_ms()}",
        status=LogStatus.ERROR,
        error_message=error.message,
        metadata=metadata,
        **fields,
    ))


# =============================================================================
# Routes
# =============================================================================

@router.post("/data-management")
async def data_management(
    request: Request,
    user_id: str = Depends(current_user),
    services=Depends(get_services),
):
    action_name = "data_management"
    try:
        body = await _json_object(request)
        try:
            action = Action(body.pop("action", None))
        except ValueError as e:
            raise ValidationError("Invalid action") from e
        action_name = action.value

        logger.info(f"Data-management action {action_name} for user {user_id}")
        return await HANDLERS[action](services, user_id, body)
    except ThreadsAutoReplyError as e:
        logger.warning(f"Data-management {action_name} failed for user {user_id}: {e.message}")
        await _audit_failure(services, user_id, action_name, e)
        raise


@router.post("/ai-reply")
async def ai_reply(
    request: Request,
    user_id: str = Depends(current_user),
    services=Depends(get_services),
):
    persona: Optional[Persona] = None
    text: Optional[str] = None
    started = time.monotonic()
    try:
        params = _parse(AIReplyRequest, await _json_object(request))
        text = params.text

        row = await services.db.get_persona(params.persona_id, user_id)
        if row is None:
            raise NotFoundError("Persona not found")
        persona = Persona.from_row(row)

        template = None
        if params.template_id:
            template_row = await services.db.get_template(params.template_id, user_id)
            if template_row:
                template = Template.from_row(template_row)

        started = time.monotonic()
        generated = await services.ai.generate_reply(params.text, persona, template)
    except ThreadsAutoReplyError as e:
        await _audit_failure(
            services, user_id, "ai_reply", e,
            text=text,
            persona=persona.name if persona else None,
        )
        raise

    await services.audit.record(LogEntry(
        user_id=user_id,
        event_id=f"ai_reply_{_now_ms()}",
        status=LogStatus.SUCCESS,
        text=params.text,
        reply=generated.reply,
        persona=persona.name,
        template_id=params.template_id,
        latency_ms=int((time.monotonic() - started) * 1000),
        metadata={
            "action": "generate_reply",
            "persona_name": persona.name,
            "template_used": generated.template_id,
        },
    ))
    return {"success": True, "reply": generated.reply, "metadata": generated.metadata}


@router.get("/logs")
async def list_logs(
    event_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(current_user),
    services=Depends(get_services),
):
    rows = await services.db.get_logs(user_id, event_id=event_id, limit=limit)
    return {"success": True, "data": rows}
