"""
Pytest fixtures and configuration.

This module provides shared fixtures for all tests:
- Test settings built without touching the environment's .env
- An in-memory SQLite store and a seeding helper
- httpx MockTransports standing in for Gemini and the Threads graph API
- Mock operator alerts

Usage:
    async def test_something(sqlite_db, seed_user, gemini_transport):
        await seed_user("user-1", persona_name="luna")
"""

import json
from typing import Optional
from unittest.mock import AsyncMock

import httpx
import pytest

from config.settings import Settings
from src.ai_client import AIClient
from src.audit_logger import AuditLogger
from src.database_sqlite import SQLiteDatabase
from src.threads_client import ThreadsClient


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "real: mark test as a real functionality test (not mock-based)"
    )
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring multiple components"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (>1s execution time)"
    )


SYSTEM_USER_ID = "00000000-0000-0000-0000-000000000000"


# =============================================================================
# Settings Fixtures
# =============================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings with fake credentials; ignores any local .env file."""
    return Settings(
        _env_file=None,
        supabase_url="https://test.supabase.co",
        supabase_key="test-key",
        ai_api_key="test-api-key",
        ai_base_url="https://gemini.test/v1beta",
        ai_model="gemini-test",
        threads_graph_url="https://graph.threads.test",
        threads_app_id="app-123",
        threads_app_secret="app-secret",
        threads_access_token="threads-token",
        webhook_verify_token="verify-me",
        system_user_id=SYSTEM_USER_ID,
        event_queue_size=10,
        worker_concurrency=2,
        shutdown_grace_seconds=0.5,
    )


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def sqlite_db():
    """Fresh in-memory store per test."""
    db = SQLiteDatabase(":memory:")
    yield db
    db.close()


@pytest.fixture
def seed_user(sqlite_db):
    """
    Return an async helper that gives a user an enabled auto_reply rule
    and one active persona. Returns the saved persona row.
    """
    async def seed(
        user_id: str,
        persona_name: Optional[str] = "luna",
        style: str = "polite, soft tone",
        enabled: bool = True,
        recent_posts: Optional[list[str]] = None,
    ) -> Optional[dict]:
        await sqlite_db.upsert_rule(user_id, {
            "rule_key": "auto_reply",
            "rule_value": "enabled" if enabled else "disabled",
            "description": "Auto reply switch",
        })
        if persona_name is None:
            return None
        rows = await sqlite_db.upsert_persona(user_id, {
            "name": persona_name,
            "display_name": persona_name.capitalize(),
            "style": style,
            "recent_posts": recent_posts or [],
        })
        return rows[0]

    return seed


# =============================================================================
# HTTP Transport Fixtures
# =============================================================================

def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(record)

    def prompts(self) -> list[str]:
        """Prompt text of every generateContent call."""
        return [
            json.loads(r.content)["contents"][0]["parts"][0]["text"]
            for r in self.requests
        ]


@pytest.fixture
def gemini_transport():
    """
    Factory for a Gemini stand-in.

    ``gemini_transport(reply="...")`` answers 200 with the reply;
    ``gemini_transport(status=503, body="...")`` answers with an error.
    """
    def make(reply: str = "お問い合わせありがとうございます！", status: int = 200, body=None):
        def handler(request: httpx.Request) -> httpx.Response:
            if status != 200:
                return httpx.Response(status, text=body or "Service Unavailable")
            return httpx.Response(200, json=body if body is not None else gemini_body(reply))
        return RecordingTransport(handler)
    return make


@pytest.fixture
def threads_transport():
    """
    Factory for a Threads graph API stand-in.

    ``posts`` maps media ids to the post JSON returned for them; unknown
    ids answer 404.
    """
    def make(posts: Optional[dict] = None, status: int = 200):
        posts = posts or {}

        def handler(request: httpx.Request) -> httpx.Response:
            if status != 200:
                return httpx.Response(status, text='{"error": "unavailable"}')
            media_id = request.url.path.strip("/")
            if media_id == "me":
                return httpx.Response(200, json={"id": "999", "username": "brand_account"})
            if media_id not in posts:
                return httpx.Response(404, text='{"error": "not found"}')
            return httpx.Response(200, json=posts[media_id])
        return RecordingTransport(handler)
    return make


@pytest.fixture
def make_ai_client(test_settings):
    def make(transport, **overrides) -> AIClient:
        kwargs = dict(
            base_url=test_settings.ai_base_url,
            api_key=test_settings.ai_api_key,
            model=test_settings.ai_model,
            timeout=5.0,
            transport=transport,
        )
        kwargs.update(overrides)
        return AIClient(**kwargs)
    return make


@pytest.fixture
def make_threads_client(test_settings):
    def make(transport, access_token: Optional[str] = None) -> ThreadsClient:
        return ThreadsClient(
            access_token=test_settings.threads_access_token if access_token is None else access_token,
            base_url=test_settings.threads_graph_url,
            timeout=5.0,
            transport=transport,
        )
    return make


# =============================================================================
# Operator Channel Fixtures
# =============================================================================

@pytest.fixture
def mock_alerts():
    """Provide mock AlertManager."""
    alerts = AsyncMock()
    alerts.error = AsyncMock()
    alerts.critical = AsyncMock()
    return alerts


@pytest.fixture
def audit(sqlite_db, mock_alerts) -> AuditLogger:
    return AuditLogger(sqlite_db, alerts=mock_alerts)
