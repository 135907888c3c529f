"""Chat completion endpoint.

Validates the request and opens the upstream stream before responding, so
configuration, validation and upstream-open failures still produce structured
error responses. After that the response is a stream.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request

from chat_relay.api.streaming import RelayStreamingResponse
from chat_relay.relay.engine import RelayEngine
from chat_relay.relay.errors import InvalidRequestError
from chat_relay.relay.framing import get_encoder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


def get_relay_engine(request: Request) -> RelayEngine:
    """Return the relay engine built by the application factory."""
    return request.app.state.relay_engine


async def _read_json_body(request: Request) -> Any:
    """Decode the request body as JSON.

    Raises:
        InvalidRequestError: 400 if the body is not valid JSON.
    """
    raw = await request.body()
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise InvalidRequestError("Request body must be valid JSON") from e


@router.post(
    "/chat",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Streamed completion"},
        400: {"description": "Invalid messages format"},
        500: {"description": "Relay not configured"},
        502: {"description": "Upstream provider failure"},
    },
)
async def submit_chat_completion(
    request: Request,
    engine: RelayEngine = Depends(get_relay_engine),
    x_request_id: str | None = Header(None, alias="X-Request-ID"),
) -> RelayStreamingResponse:
    """Stream a chat completion from the upstream provider.

    Body:
        messages: Array of messages with ``role`` and either ``content`` or
            typed ``parts``.
        model: Optional model override.

    Returns:
        A streaming response carrying the provider's output in order.

    Raises:
        400: Invalid JSON or messages format.
        500: Upstream credential not configured.
        502: Upstream provider unreachable or rejected the request.
    """
    config = request.app.state.config
    # Credential check precedes body parsing.
    config.require_api_key()

    body = await _read_json_body(request)
    session = await engine.open_session(body, request_id=x_request_id)

    encoder = get_encoder(config.stream_protocol)
    return RelayStreamingResponse(
        session,
        engine.relay(session, encoder),
        media_type=encoder.media_type,
        headers={
            **encoder.headers,
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Request-ID": session.request_id,
        },
    )
