"""
Test Suite for the Threads auto-reply service.

Structure:
    tests/
    ├── conftest.py          # Shared fixtures and configuration
    ├── unit/                # Component tests with controlled inputs
    │   ├── test_settings.py
    │   ├── test_models.py
    │   ├── test_ai_client.py
    │   ├── test_threads_client.py
    │   ├── test_webhook_parsing.py
    │   ├── test_reply_filter.py
    │   ├── test_management.py
    │   ├── test_supabase_store.py
    │   └── test_audit_and_alerts.py
    ├── integration/         # HTTP-level tests through the FastAPI app
    │   ├── test_webhook_api.py
    │   └── test_management_api.py
    └── real/                # Real functionality tests on the SQLite store
        ├── test_database_real.py
        ├── test_orchestrator_real.py
        └── test_background_worker_real.py

Run tests:
    pytest tests/                    # All tests
    pytest tests/unit/               # Unit tests only
    pytest tests/real/               # Real functionality tests only
    pytest tests/integration/        # Integration tests only
    pytest tests/ -m "not slow"      # Skip retry-backoff tests
"""
