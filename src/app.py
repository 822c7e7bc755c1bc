"""
Threads Auto-Reply Service - FastAPI application and entry point.

This module wires the components together:
    1. Store (Supabase, with SQLite fallback)
    2. Threads and AI clients
    3. Audit logger and operator alerts
    4. Orchestrator and the background event queue
    5. HTTP routes (webhook, data management, AI reply, logs, health)

Usage:
    python -m src.app
"""

import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from config import Settings, settings as default_settings
from src.ai_client import AIClient
from src.alerts import AlertManager
from src.audit_logger import AuditLogger
from src.auth import SupabaseAuthenticator, UnavailableAuthenticator, get_services
from src.background_worker import EventQueue
from src.database import Database
from src.errors import ThreadsAutoReplyError, VerificationError
from src.orchestrator import AutoReplyOrchestrator
from src.reply_filter import ReplyFilter
from src.threads_client import ThreadsClient
from src import management, webhook

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


@dataclass
class Services:
    """Everything the routes need, built once per process."""
    settings: Settings
    db: Any
    threads: ThreadsClient
    ai: AIClient
    audit: AuditLogger
    events: EventQueue
    authenticator: Any
    alerts: Optional[AlertManager] = None


async def _connect_store(settings: Settings):
    """Supabase when reachable, otherwise the local SQLite file."""
    try:
        db = Database(settings.supabase_url, settings.supabase_key)
        if not await db.health_check():
            raise ConnectionError("Supabase health check failed")
        logger.info("Database initialized (Supabase)")
        return db
    except Exception as e:
        logger.warning(f"Supabase unavailable ({e}), falling back to SQLite")
        from src.database_sqlite import SQLiteDatabase
        db = SQLiteDatabase(settings.sqlite_fallback_path)
        logger.info("Database initialized (SQLite fallback)")
        return db


def build_services(settings: Settings, db, alerts: Optional[AlertManager] = None) -> Services:
    """Wire collaborators around an already-connected store."""
    threads = ThreadsClient(
        access_token=settings.threads_access_token,
        base_url=settings.threads_graph_url,
        timeout=settings.threads_timeout,
    )
    ai = AIClient(
        base_url=settings.ai_base_url,
        api_key=settings.ai_api_key,
        model=settings.ai_model,
        timeout=settings.ai_timeout,
        max_attempts=settings.ai_max_attempts,
        language=settings.reply_language,
    )
    audit = AuditLogger(db, alerts=alerts)
    orchestrator = AutoReplyOrchestrator(
        db=db,
        threads=threads,
        ai=ai,
        audit=audit,
        reply_filter=ReplyFilter(db),
        system_user_id=settings.system_user_id,
    )
    events = EventQueue(
        orchestrator,
        audit=audit,
        alerts=alerts,
        maxsize=settings.event_queue_size,
        concurrency=settings.worker_concurrency,
        system_user_id=settings.system_user_id,
    )

    if isinstance(db, Database):
        authenticator = SupabaseAuthenticator(db.client)
    else:
        logger.warning("Dashboard authentication unavailable without Supabase")
        authenticator = UnavailableAuthenticator()

    return Services(
        settings=settings,
        db=db,
        threads=threads,
        ai=ai,
        audit=audit,
        events=events,
        authenticator=authenticator,
        alerts=alerts,
    )


def _build_alerts(settings: Settings) -> AlertManager:
    notifier = None
    if settings.telegram_bot_token and settings.telegram_chat_id:
        from src.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
        logger.info("Telegram alerts enabled")
    return AlertManager(notifier=notifier, min_telegram_level=settings.min_telegram_alert_level)


def create_app(
    services: Optional[Services] = None,
    settings: Optional[Settings] = None,
    start_workers: bool = True,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        services: Pre-built collaborators (tests inject fakes here). When
            omitted they are built from ``settings`` during startup.
        settings: Configuration; defaults to the process settings.
        start_workers: Start queue consumers in the lifespan.
    """
    settings = settings or (services.settings if services else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            db = await _connect_store(settings)
            app.state.services = build_services(settings, db, alerts=_build_alerts(settings))
        events = app.state.services.events
        if start_workers:
            events.start()
        logger.info(f"Threads auto-reply service v{__version__} ready")
        yield
        await events.stop(settings.shutdown_grace_seconds)

    app = FastAPI(title="Threads Auto-Reply", version=__version__, lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(ThreadsAutoReplyError)
    async def service_error_handler(request: Request, exc: ThreadsAutoReplyError):
        if isinstance(exc, VerificationError):
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()))
        return JSONResponse(
            {"error": f"Invalid field '{location}': {first.get('msg', 'invalid')}"},
            status_code=400,
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unexpected error on {request.method} {request.url.path}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/health")
    async def health(services=Depends(get_services)):
        store_ok = await services.db.health_check()
        missing = services.settings.missing_required()
        return {
            "status": "ok" if store_ok and not missing else "degraded",
            "version": __version__,
            "store": store_ok,
            "queue_depth": services.events.depth,
            "workers_running": services.events.running,
            "missing_config": missing,
        }

    app.include_router(webhook.router)
    app.include_router(management.router)
    return app


def main() -> None:
    """Configure logging, validate settings and serve."""
    logging.basicConfig(
        level=default_settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Suppress noisy HTTP logs
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger.info("=" * 60)
    logger.info(f"Starting Threads Auto-Reply v{__version__}")
    logger.info(f"AI model: {default_settings.ai_model}")
    logger.info("=" * 60)

    try:
        default_settings.validate_required()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    uvicorn.run(
        create_app(),
        host=default_settings.host,
        port=default_settings.port,
        log_level=default_settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
