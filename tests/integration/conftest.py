"""
Fixtures for HTTP-level tests.

The app is built around injected collaborators: the in-memory SQLite
store, MockTransport-backed clients, and a token table standing in for
Supabase Auth. Requests go through TestClient without entering the
lifespan, so no consumer tasks run and queued events stay put until a
test drains them.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from src.app import Services, create_app
from src.background_worker import EventQueue
from src.orchestrator import AutoReplyOrchestrator
from src.reply_filter import ReplyFilter
from tests.integration.helpers import POSTS, TokenTableAuthenticator


@pytest.fixture
def build_services(
    test_settings, sqlite_db, audit, mock_alerts,
    gemini_transport, threads_transport, make_ai_client, make_threads_client,
):
    """
    Factory for a Services bundle.

    Returns (services, ai_transport, threads_transport) so tests can
    inspect outbound calls.
    """
    def build(settings=None, ai_transport=None, threads=None, queue_size=None):
        settings = settings or test_settings
        ai_transport = ai_transport or gemini_transport()
        threads = threads or threads_transport(POSTS)
        threads_client = make_threads_client(threads)
        ai_client = make_ai_client(ai_transport)
        orchestrator = AutoReplyOrchestrator(
            db=sqlite_db,
            threads=threads_client,
            ai=ai_client,
            audit=audit,
            reply_filter=ReplyFilter(sqlite_db),
            system_user_id=settings.system_user_id,
        )
        events = EventQueue(
            orchestrator,
            audit=audit,
            alerts=mock_alerts,
            maxsize=queue_size or settings.event_queue_size,
            concurrency=settings.worker_concurrency,
            system_user_id=settings.system_user_id,
        )
        services = Services(
            settings=settings,
            db=sqlite_db,
            threads=threads_client,
            ai=ai_client,
            audit=audit,
            events=events,
            authenticator=TokenTableAuthenticator(),
            alerts=mock_alerts,
        )
        return services, ai_transport, threads
    return build


@pytest.fixture
def make_client(build_services):
    """Factory returning (TestClient, services, ai_transport, threads_transport)."""
    def make(**kwargs):
        services, ai, threads = build_services(**kwargs)
        client = TestClient(create_app(services=services), raise_server_exceptions=False)
        return client, services, ai, threads
    return make


@pytest.fixture
def run():
    """Run a coroutine to completion from a synchronous test."""
    return asyncio.run
