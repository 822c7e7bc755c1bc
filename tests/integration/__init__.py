"""
Integration Tests Package.

HTTP-level tests through the FastAPI app with injected collaborators:
the SQLite store, MockTransport-backed Threads and Gemini clients, and a
token table in place of Supabase Auth.
"""
