"""Remote workout API access.

Modules:
    executor — Retrying request executor (classified, bounded exponential backoff)
    client   — Typed client for the remote workout endpoints
"""
