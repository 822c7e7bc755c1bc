"""
Threads Auto-Reply - webhook-driven AI replies for Threads mentions.

The service receives mention/reply webhooks from Threads, matches them
against each user's auto-reply rules and personas, asks Gemini for a
reply in the persona's voice, and writes every step to an audit log
that the dashboard reads.

Modules:
    app: FastAPI application factory and entry point
    webhook: Webhook Receiver - handshake, signature check, event parsing
    background_worker: In-process event queue feeding the orchestrator
    orchestrator: Auto-Reply Orchestrator - rule/persona resolution per event
    reply_filter: Per-user keyword, NG-word and ban-list gate
    ai_client: Gemini client and prompt construction
    threads_client: Threads graph API client
    audit_logger: Append-only LogEntry writer
    management: Dashboard data-management, AI reply and log APIs
    auth: Bearer token resolution through Supabase Auth
    alerts / telegram_notifier: Operator error channel
    database / database_sqlite: Supabase store and its SQLite fallback

Entry Point:
    python -m src.app
"""

__version__ = "0.1.0"
