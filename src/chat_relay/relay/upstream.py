"""Upstream completion client.

Opens streaming ``/chat/completions`` calls against an OpenAI-compatible
provider with httpx and exposes the provider's server-sent events as a lazy
sequence of StreamChunk values.

The HTTP response behind an UpstreamStream is released on every exit path:
normal completion, the consumer abandoning iteration, or an upstream error.
Nothing here retries.
"""

import json
import logging
from collections.abc import AsyncGenerator

import anyio
import httpx

from chat_relay.models.schemas import CompletionRequest, StreamChunk
from chat_relay.relay.config import RelayConfig
from chat_relay.relay.errors import UpstreamError

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_ERROR_BODY_LIMIT = 500


def parse_sse_line(line: str) -> StreamChunk | None:
    """Parse one line of the provider's event stream.

    Args:
        line: A single line, without its trailing newline.

    Returns:
        A StreamChunk, or None for lines that carry no text (blank lines,
        comments, ``event:``/``id:`` fields, role-only or usage deltas).

    Raises:
        UpstreamError: If a data frame is not valid JSON or reports an error.
    """
    if not line.startswith("data:"):
        return None

    payload = line[5:].strip()
    if not payload:
        return None
    if payload == DONE_SENTINEL:
        return StreamChunk(is_final=True)

    try:
        event = json.loads(payload)
    except ValueError as e:
        raise UpstreamError(f"Malformed upstream stream frame: {payload[:80]!r}") from e

    if not isinstance(event, dict):
        raise UpstreamError("Malformed upstream stream frame: expected a JSON object")

    if error := event.get("error"):
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise UpstreamError(f"Upstream reported an error: {message}")

    choices = event.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None

    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if not isinstance(content, str) or not content:
        return None

    return StreamChunk(data=content)


class UpstreamStream:
    """One open streaming completion call.

    Iterate ``chunks()`` once; always ``aclose()`` when done.
    """

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self._consumed = False
        self._closed = False
        self.chunks_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def status_code(self) -> int:
        return self._response.status_code

    def chunks(self) -> AsyncGenerator[StreamChunk]:
        """Return the chunk sequence.

        Raises:
            RuntimeError: If the sequence was already requested.
        """
        if self._consumed:
            raise RuntimeError("Upstream stream can only be iterated once")
        self._consumed = True
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncGenerator[StreamChunk]:
        try:
            async for line in self._response.aiter_lines():
                chunk = parse_sse_line(line)
                if chunk is None:
                    continue
                self.chunks_read += 1
                yield chunk
                if chunk.is_final:
                    return
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise UpstreamError(f"Upstream stream interrupted: {e}") from e
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        """Release the underlying HTTP response. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        with anyio.CancelScope(shield=True):
            await self._response.aclose()


class UpstreamClient:
    """Client for the provider's streaming chat completions endpoint."""

    def __init__(
        self,
        config: RelayConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the upstream client.

        Args:
            config: Relay configuration (credential, base URL, timeouts).
            http_client: Optional preconfigured httpx client. When not provided,
                one is created (and owned) on first use.
        """
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client

    @property
    def http(self) -> httpx.AsyncClient:
        """The httpx client, created on first access when none was injected."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=httpx.Timeout(self._config.read_timeout, connect=self._config.connect_timeout),
            )
        return self._http

    @property
    def completions_url(self) -> str:
        return f"{self._config.base_url}/chat/completions"

    async def open(self, request: CompletionRequest) -> UpstreamStream:
        """Open a streaming completion call.

        Args:
            request: The normalized completion request.

        Returns:
            An UpstreamStream whose response headers indicated success.

        Raises:
            ConfigurationError: If no credential is configured (no network call is made).
            UpstreamError: If the provider is unreachable or answers non-2xx.
        """
        api_key = self._config.require_api_key()

        http_request = self.http.build_request(
            "POST",
            self.completions_url,
            json=request.to_payload(),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "text/event-stream",
            },
        )

        try:
            response = await self.http.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream request failed: {e}") from e

        if response.is_error:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            finally:
                await response.aclose()
            logger.warning(
                f"Upstream rejected request: status={response.status_code} body={body[:_ERROR_BODY_LIMIT]!r}"
            )
            raise UpstreamError(
                f"Upstream returned HTTP {response.status_code}",
                upstream_status=response.status_code,
            )

        return UpstreamStream(response)

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client and self._http is not None:
            await self._http.aclose()
