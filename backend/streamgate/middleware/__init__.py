# Middleware package init
"""
StreamGate Backend - Middleware Package
========================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [CORS] → Route Handler

    1. Request ID: correlation id stored in a ContextVar and echoed back
    2. Logging: one access line per request, level chosen by status
    3. CORS: browser players fetching /stream from another origin
"""
