"""
StreamGate Backend - Application Package Initializer
====================================================

What: Signed-URL streaming reverse proxy for files hosted behind the Telegram Bot API.
Who:  Imported by uvicorn (`uvicorn streamgate.main:app`), pytest, and the
      services themselves for version reporting.

Architecture Note:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← query params, headers, status codes
    ├─────────────────────────────────────┤
    │   StreamService (orchestrator)      │  ← verify → admit → resolve → relay
    ├─────────────────────────────────────┤
    │  Verifier · Admission · Resolver ·  │  ← one concern each
    │  Relay                              │
    ├─────────────────────────────────────┤
    │    Upstream HTTP client (httpx)     │  ← shared connection pool
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
