"""Chat Relay - streaming completion relay for browser chat clients.

Accepts chat requests over HTTP, normalizes them, forwards them to an
OpenAI-compatible completion provider and streams the provider's incremental
output back to the waiting client.

Components:
    - api: HTTP endpoints, error responses and the streaming response
    - relay: normalization, model resolution, upstream client and relay engine
    - models: Request/response and stream schemas
"""

__version__ = "0.1.0"
