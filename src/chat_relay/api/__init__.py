"""HTTP layer for the chat relay.

Endpoints:
    - POST /api/chat: Streamed chat completion
    - GET /api/health: Liveness check
"""

from chat_relay.api.app import app, create_app

__all__ = ["app", "create_app"]
