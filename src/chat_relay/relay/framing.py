"""Client-side stream framing.

Turns forwarded text into the bytes written to the chat client. Two
protocols are supported:

    - ``sse``: server-sent events carrying StreamEvent JSON
    - ``data``: the AI SDK data-stream protocol read by ``useChat`` clients
"""

import json

from chat_relay.models.schemas import StreamEvent, StreamStatus


class StreamEncoder:
    """Base encoder; subclasses define the wire format."""

    media_type = "application/octet-stream"
    headers: dict[str, str] = {}

    def content(self, text: str) -> bytes:
        raise NotImplementedError

    def done(self) -> bytes:
        raise NotImplementedError

    def error(self, message: str) -> bytes:
        raise NotImplementedError


class SSEEncoder(StreamEncoder):
    """Server-sent events with one StreamEvent per ``data:`` line."""

    media_type = "text/event-stream"

    @staticmethod
    def _event(event: StreamEvent) -> bytes:
        return f"data: {event.model_dump_json(exclude_none=True)}\n\n".encode()

    def content(self, text: str) -> bytes:
        return self._event(StreamEvent(content=text, done=False))

    def done(self) -> bytes:
        return self._event(StreamEvent(content="", done=True, status=StreamStatus.COMPLETE))

    def error(self, message: str) -> bytes:
        return self._event(
            StreamEvent(content="", done=True, status=StreamStatus.ERROR, error=message)
        )


class DataStreamEncoder(StreamEncoder):
    """AI SDK data-stream parts: ``0:`` text, ``3:`` error, ``d:`` finish."""

    media_type = "text/plain; charset=utf-8"
    headers = {"x-vercel-ai-data-stream": "v1"}

    def content(self, text: str) -> bytes:
        return f"0:{json.dumps(text)}\n".encode()

    def done(self) -> bytes:
        return f"d:{json.dumps({'finishReason': 'stop'})}\n".encode()

    def error(self, message: str) -> bytes:
        return f"3:{json.dumps(message)}\n".encode()


_ENCODERS: dict[str, type[StreamEncoder]] = {
    "sse": SSEEncoder,
    "data": DataStreamEncoder,
}


def get_encoder(protocol: str) -> StreamEncoder:
    """Return the encoder for a protocol name.

    Raises:
        ValueError: If the protocol is unknown.
    """
    try:
        return _ENCODERS[protocol]()
    except KeyError:
        raise ValueError(f"Unknown stream protocol: {protocol!r}") from None
