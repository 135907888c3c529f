"""Message normalization.

Canonicalizes the message shapes browser chat clients send (flat ``content``
strings, or lists of typed parts) into ChatMessage instances.
"""

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import TypeAdapter, ValidationError

from chat_relay.models.schemas import (
    ChatMessage,
    InboundMessage,
    MessagePart,
    MessageRole,
    TextPart,
)
from chat_relay.relay.errors import InvalidRequestError

logger = logging.getLogger(__name__)

_part_adapter = TypeAdapter(MessagePart)


def first_text(parts: Sequence[Any]) -> str:
    """Return the text of the first text part, or an empty string.

    Each part is validated on its own. Malformed non-text parts are skipped;
    a malformed first text part yields an empty string.
    """
    for raw_part in parts:
        try:
            part = _part_adapter.validate_python(raw_part)
        except ValidationError:
            if isinstance(raw_part, dict) and raw_part.get("type") == "text":
                return ""
            continue
        if isinstance(part, TextPart):
            return part.text
    return ""


def _resolve_role(raw_role: str | None, index: int) -> MessageRole:
    try:
        return MessageRole(raw_role)
    except ValueError:
        logger.warning(f"Message {index} has unsupported role {raw_role!r}; treating as user")
        return MessageRole.USER


def normalize_message(raw: Any, index: int = 0) -> ChatMessage:
    """Normalize one inbound message.

    Malformed messages degrade to empty content instead of failing the
    request.

    Args:
        raw: A message-like value from the request body.
        index: Position of the message, used for logging.

    Returns:
        The normalized ChatMessage.
    """
    if not isinstance(raw, dict):
        logger.warning(f"Message {index} is not an object; using empty content")
        return ChatMessage(role=MessageRole.USER, content="")

    try:
        inbound = InboundMessage.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"Message {index} is malformed ({e.error_count()} errors); using empty content")
        role = raw.get("role")
        return ChatMessage(
            role=_resolve_role(role if isinstance(role, str) else None, index),
            content="",
        )

    if inbound.parts is not None:
        content = first_text(inbound.parts)
    elif isinstance(inbound.content, list):
        content = first_text(inbound.content)
    else:
        content = inbound.content or ""

    return ChatMessage(role=_resolve_role(inbound.role, index), content=content)


def normalize_messages(raw_messages: Any) -> list[ChatMessage]:
    """Normalize the ``messages`` field of a chat request.

    Args:
        raw_messages: The raw ``messages`` value.

    Returns:
        Normalized messages in the original order.

    Raises:
        InvalidRequestError: If messages is absent, not a list, or empty.
    """
    if raw_messages is None or not isinstance(raw_messages, list):
        raise InvalidRequestError("Invalid messages format: 'messages' must be an array")

    if not raw_messages:
        raise InvalidRequestError("Invalid messages format: 'messages' must not be empty")

    return [normalize_message(raw, index) for index, raw in enumerate(raw_messages)]
