"""Relay engine: owns one client connection's pairing with one upstream stream.

Session lifecycle::

    idle -> validating -> streaming -> completed
                     \\            \\-> cancelled
                      \\-> failed   \\-> failed

Validation and the upstream open happen before anything is written to the
client, so their failures can still be reported as structured responses.
Once streaming, chunks are forwarded in arrival order with one chunk in
flight: the next upstream read happens only after the previous write.
"""

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import aclosing
from enum import Enum
from typing import Any

from chat_relay.models.schemas import CompletionRequest
from chat_relay.relay.config import RelayConfig
from chat_relay.relay.errors import InvalidRequestError, RelayError, UpstreamError
from chat_relay.relay.framing import StreamEncoder
from chat_relay.relay.normalizer import normalize_messages
from chat_relay.relay.resolver import ModelResolver
from chat_relay.relay.upstream import UpstreamClient, UpstreamStream

logger = logging.getLogger(__name__)


class RelayState(str, Enum):
    """States of a relay session."""

    IDLE = "idle"
    VALIDATING = "validating"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


_TRANSITIONS: dict[RelayState, frozenset[RelayState]] = {
    RelayState.IDLE: frozenset({RelayState.VALIDATING}),
    RelayState.VALIDATING: frozenset({RelayState.STREAMING, RelayState.FAILED}),
    RelayState.STREAMING: frozenset(
        {RelayState.COMPLETED, RelayState.CANCELLED, RelayState.FAILED}
    ),
}

TERMINAL_STATES = frozenset({RelayState.COMPLETED, RelayState.CANCELLED, RelayState.FAILED})


class RelaySession:
    """Live state of one client/upstream pairing.

    Attributes:
        request_id: Correlation id for logs and response headers.
        state: Current lifecycle state.
        upstream: The open upstream stream, once streaming.
        cancelled: Set when the client went away.
        bytes_forwarded: Bytes written to the client so far.
        chunks_forwarded: Upstream chunks written to the client so far.
    """

    def __init__(self, request_id: str | None = None) -> None:
        self.request_id = request_id or str(uuid.uuid4())
        self.state = RelayState.IDLE
        self.upstream: UpstreamStream | None = None
        self.cancelled = False
        self.bytes_forwarded = 0
        self.chunks_forwarded = 0
        self._closed = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: RelayState) -> None:
        """Move to ``new_state``.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        if new_state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(
                f"Illegal relay transition {self.state.value} -> {new_state.value}"
            )
        logger.debug(f"[{self.request_id}] {self.state.value} -> {new_state.value}")
        self.state = new_state

    def attach(self, upstream: UpstreamStream) -> None:
        if self.upstream is not None:
            raise RuntimeError("Relay session already has an upstream stream")
        self.upstream = upstream

    def cancel(self) -> None:
        """Record that the client connection is gone."""
        self.cancelled = True

    def record(self, written: int) -> None:
        self.chunks_forwarded += 1
        self.bytes_forwarded += written

    async def close(self) -> None:
        """Release the upstream stream exactly once.

        A session still streaming at close time ended because the client
        left, so it becomes cancelled.
        """
        if self._closed:
            return
        self._closed = True

        if self.state is RelayState.STREAMING:
            self.cancel()
            self.transition(RelayState.CANCELLED)
            logger.info(
                f"[{self.request_id}] Client disconnected after {self.chunks_forwarded} chunks; "
                "upstream stream closed"
            )

        if self.upstream is not None:
            await self.upstream.aclose()


class RelayEngine:
    """Validates chat requests, opens upstream streams and pumps them to clients."""

    def __init__(self, config: RelayConfig, upstream_client: UpstreamClient) -> None:
        self._config = config
        self._upstream_client = upstream_client
        self._resolver = ModelResolver(
            default_model=config.default_model,
            fallback_model=config.fallback_model,
            blocked_prefixes=config.blocked_model_prefixes,
        )

    @property
    def upstream_client(self) -> UpstreamClient:
        return self._upstream_client

    def build_completion(self, body: Any) -> CompletionRequest:
        """Validate a request body and build the upstream request.

        Raises:
            ConfigurationError: If no credential is configured.
            InvalidRequestError: If the body or its messages are malformed.
        """
        self._config.require_api_key()

        if not isinstance(body, dict):
            raise InvalidRequestError("Request body must be a JSON object")

        messages = normalize_messages(body.get("messages"))
        resolution = self._resolver.resolve(body.get("model"))

        return CompletionRequest(
            model=resolution.model,
            messages=messages,
            temperature=self._config.temperature,
            max_tokens=self._config.max_tokens,
        )

    async def open_session(self, body: Any, request_id: str | None = None) -> RelaySession:
        """Validate a request and open its upstream stream.

        Args:
            body: Decoded JSON request body.
            request_id: Correlation id; generated when absent.

        Returns:
            A session in the streaming state.

        Raises:
            RelayError: On configuration, validation or upstream failure. No
                upstream stream is left open and nothing has been written.
        """
        session = RelaySession(request_id)
        session.transition(RelayState.VALIDATING)

        try:
            completion = self.build_completion(body)
            logger.info(
                f"[{session.request_id}] Processing chat request with "
                f"{len(completion.messages)} messages using model {completion.model!r}"
            )
            upstream = await self._upstream_client.open(completion)
        except RelayError as e:
            session.transition(RelayState.FAILED)
            logger.warning(f"[{session.request_id}] Request rejected: {e.code}: {e.detail}")
            raise

        session.attach(upstream)
        session.transition(RelayState.STREAMING)
        return session

    async def relay(self, session: RelaySession, encoder: StreamEncoder) -> AsyncGenerator[bytes]:
        """Forward upstream chunks to the client as encoded frames.

        Each frame is yielded before the next upstream read. Closing this
        generator (client disconnect) cancels the session and closes the
        upstream stream without reading further chunks.

        Args:
            session: A session returned by ``open_session``.
            encoder: Wire framing for the client.

        Yields:
            Encoded frames, in upstream order.
        """
        if session.state is not RelayState.STREAMING or session.upstream is None:
            raise RuntimeError("Relay session is not streaming")

        try:
            async with aclosing(session.upstream.chunks()) as chunks:
                async for chunk in chunks:
                    if chunk.data:
                        frame = encoder.content(chunk.data)
                        yield frame
                        session.record(len(frame))
                    if chunk.is_final:
                        break

            session.transition(RelayState.COMPLETED)
            logger.info(
                f"[{session.request_id}] Stream completed: "
                f"{session.chunks_forwarded} chunks, {session.bytes_forwarded} bytes"
            )
            yield encoder.done()
        except UpstreamError as e:
            session.transition(RelayState.FAILED)
            logger.warning(
                f"[{session.request_id}] Upstream failed mid-stream after "
                f"{session.chunks_forwarded} chunks: {e.detail}"
            )
            yield encoder.error(e.detail)
        except Exception:
            if session.state is RelayState.STREAMING:
                session.transition(RelayState.FAILED)
            logger.exception(
                f"[{session.request_id}] Relay aborted after {session.chunks_forwarded} chunks"
            )
            raise
        finally:
            await session.close()
