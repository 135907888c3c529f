"""Pydantic models for the relay's inbound, upstream and wire payloads."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
)


class MessageRole(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class StreamStatus(str, Enum):
    """Status values for streaming updates."""

    COMPLETE = "complete"
    ERROR = "error"


class TextPart(BaseModel):
    """A message part carrying text."""

    type: Literal["text"]
    text: str = ""


class OpaquePart(BaseModel):
    """Any non-text message part (image, file, tool call).

    Kept only so inbound payloads validate; never forwarded upstream.
    """

    model_config = ConfigDict(extra="allow")

    type: str | None = None


def _part_tag(value: Any) -> str:
    if isinstance(value, dict):
        return "text" if value.get("type") == "text" else "opaque"
    return "text" if getattr(value, "type", None) == "text" else "opaque"


MessagePart = Annotated[
    Union[Annotated[TextPart, Tag("text")], Annotated[OpaquePart, Tag("opaque")]],
    Discriminator(_part_tag),
]


class InboundMessage(BaseModel):
    """A message as sent by the chat client.

    Content arrives either flat (``content`` string) or as typed parts, in
    ``parts`` or in ``content`` itself.

    Attributes:
        role: Raw role string as supplied by the client.
        content: Flat text, or a list of typed parts.
        parts: List of typed parts.

    Parts stay raw here and are validated one by one as MessagePart, so a
    malformed part does not invalidate its siblings.
    """

    model_config = ConfigDict(extra="ignore")

    role: str | None = None
    content: str | list[Any] | None = None
    parts: list[Any] | None = None


class ChatMessage(BaseModel):
    """A single normalized chat message in the conversation.

    Attributes:
        role: The speaker identifier (user, assistant, or system).
        content: The message text, never absent.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: MessageRole = Field(..., description="Message role: 'user', 'assistant', or 'system'")
    content: str = Field("", description="The message content")


class CompletionRequest(BaseModel):
    """Normalized unit of work submitted upstream.

    Attributes:
        model: Validated model identifier.
        messages: Conversation in order, at least one message.
        temperature: Sampling temperature.
        max_tokens: Maximum tokens in the generated response.
    """

    model_config = ConfigDict(frozen=True)

    model: str = Field(..., min_length=1)
    messages: list[ChatMessage] = Field(..., min_length=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, ge=1)

    def to_payload(self) -> dict[str, Any]:
        """Build the OpenAI-compatible streaming request body."""
        return {
            "model": self.model,
            "messages": [message.model_dump() for message in self.messages],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }


class StreamChunk(BaseModel):
    """One unit of incremental output from the upstream provider.

    Attributes:
        data: Text fragment produced by the provider.
        is_final: Whether no further chunks follow.
    """

    model_config = ConfigDict(frozen=True)

    data: str = ""
    is_final: bool = False


class StreamEvent(BaseModel):
    """A server-sent event as written to the chat client.

    Attributes:
        content: The text content of this event.
        done: Whether this is the final event.
        status: Terminal status, set only on the final event.
        error: Error message if the stream failed.
    """

    content: str
    done: bool
    status: StreamStatus | None = None
    error: str | None = None


class ErrorResponse(BaseModel):
    """Structured error returned before any streaming has begun.

    Attributes:
        error: Machine-readable error code.
        detail: Human-readable explanation.
        upstream_status: Provider HTTP status, when the provider rejected the call.
    """

    error: str
    detail: str
    upstream_status: int | None = None


class HealthResponse(BaseModel):
    """Liveness check payload."""

    status: str = "ok"
    timestamp: datetime
