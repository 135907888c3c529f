"""Pydantic models for API requests, upstream chunks and stream events.

Models:
    - InboundMessage: Message as supplied by the chat client
    - ChatMessage: Normalized conversation turn
    - CompletionRequest: Unit of work submitted upstream
    - StreamChunk: Incremental upstream output
    - StreamEvent: Server-sent event written to the client
    - ErrorResponse: Structured error body
    - HealthResponse: Liveness check payload
"""

from chat_relay.models.schemas import (
    ChatMessage,
    CompletionRequest,
    ErrorResponse,
    HealthResponse,
    InboundMessage,
    MessagePart,
    MessageRole,
    OpaquePart,
    StreamChunk,
    StreamEvent,
    StreamStatus,
    TextPart,
)

__all__ = [
    "ChatMessage",
    "CompletionRequest",
    "ErrorResponse",
    "HealthResponse",
    "InboundMessage",
    "MessagePart",
    "MessageRole",
    "OpaquePart",
    "StreamChunk",
    "StreamEvent",
    "StreamStatus",
    "TextPart",
]
