# Services package init
"""
StreamGate Backend - Services Layer
=====================================

What:  Business logic between the /stream route and the upstream Bot API.

Service Inventory:
    - token_verifier: HMAC capability token signing, verification, expiry
    - admission:      per-process concurrent stream ceiling
    - resolver:       Telegram getFile metadata → download URL
    - relay:          content fetch, header allow-list, chunk loop, throttle
    - stream_service: orchestrates the above for one request
"""
