"""
Real Functionality Tests Package.

This package contains tests that verify actual component behavior,
not just mock interactions. Tests focus on:
- Store semantics on an in-memory SQLite database
- The full reply pipeline, one event at a time
- Queue and consumer lifecycle

Mock vs Real Strategy:
- Mock: External APIs (Threads, Gemini, Telegram)
- Real: Orchestration, filtering, persistence, queueing
"""
