"""Streaming completion relay core.

Responsibilities:
    - Message normalization into a single internal schema
    - Model resolution with fallback for unsupported identifiers
    - Streaming calls to the upstream completion provider
    - Pumping upstream chunks to the client with deterministic cleanup

Maintains clean separation from the HTTP layer.
"""

from chat_relay.relay.config import RelayConfig, get_relay_config
from chat_relay.relay.engine import RelayEngine, RelaySession, RelayState
from chat_relay.relay.errors import (
    ConfigurationError,
    InvalidRequestError,
    RelayError,
    UpstreamError,
)
from chat_relay.relay.upstream import UpstreamClient, UpstreamStream

__all__ = [
    "ConfigurationError",
    "InvalidRequestError",
    "RelayConfig",
    "RelayEngine",
    "RelayError",
    "RelaySession",
    "RelayState",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamStream",
    "get_relay_config",
]
