# Routes package init
"""
StreamGate Backend - API Routes Package
=========================================

Route Inventory:
    - stream.py:  GET /stream   (signed, range-capable file relay)
    - health.py:  GET /health   (process status and stream occupancy)

Routes stay thin: they read the request and delegate to services.
"""
