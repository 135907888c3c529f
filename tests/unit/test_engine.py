"""Unit tests for the relay engine and session state machine."""

import json

import pytest
import pytest_check as check

from chat_relay.models.schemas import StreamChunk
from chat_relay.relay.config import RelayConfig
from chat_relay.relay.engine import RelayEngine, RelaySession, RelayState
from chat_relay.relay.errors import ConfigurationError, InvalidRequestError, UpstreamError
from chat_relay.relay.framing import SSEEncoder
from tests.unit.relay_fakes import FakeUpstreamClient, FakeUpstreamStream, text_chunks

HI = {"messages": [{"role": "user", "content": "hi"}]}


def decode_sse(frames: list[bytes]) -> list[dict]:
    return [json.loads(frame.decode().removeprefix("data: ")) for frame in frames]


def make_engine(config: RelayConfig, stream: FakeUpstreamStream | None = None) -> tuple[RelayEngine, FakeUpstreamClient]:
    client = FakeUpstreamClient(stream)
    return RelayEngine(config, client), client


class TestRelaySession:
    """Tests for session state transitions and cleanup."""

    def test_starts_idle(self) -> None:
        session = RelaySession()

        check.equal(session.state, RelayState.IDLE)
        check.is_false(session.cancelled)
        check.equal(session.bytes_forwarded, 0)
        check.is_true(session.request_id)

    def test_happy_path_transitions(self) -> None:
        session = RelaySession("req-1")

        session.transition(RelayState.VALIDATING)
        session.transition(RelayState.STREAMING)
        session.transition(RelayState.COMPLETED)

        assert session.is_terminal

    def test_validation_failure_goes_straight_to_failed(self) -> None:
        session = RelaySession()
        session.transition(RelayState.VALIDATING)

        session.transition(RelayState.FAILED)

        assert session.state is RelayState.FAILED

    @pytest.mark.parametrize(
        "path",
        [
            [RelayState.STREAMING],
            [RelayState.VALIDATING, RelayState.COMPLETED],
            [RelayState.VALIDATING, RelayState.VALIDATING],
        ],
    )
    def test_illegal_transitions_raise(self, path: list[RelayState]) -> None:
        session = RelaySession()

        with pytest.raises(RuntimeError, match="Illegal relay transition"):
            for state in path:
                session.transition(state)

    @pytest.mark.parametrize(
        "terminal", [RelayState.COMPLETED, RelayState.CANCELLED, RelayState.FAILED]
    )
    def test_terminal_states_are_final(self, terminal: RelayState) -> None:
        session = RelaySession()
        session.transition(RelayState.VALIDATING)
        session.transition(RelayState.STREAMING)
        session.transition(terminal)

        for state in RelayState:
            with pytest.raises(RuntimeError):
                session.transition(state)

    def test_only_one_upstream_per_session(self) -> None:
        session = RelaySession()
        session.attach(FakeUpstreamStream([]))

        with pytest.raises(RuntimeError, match="already has an upstream"):
            session.attach(FakeUpstreamStream([]))

    async def test_close_releases_upstream_once(self) -> None:
        """Closing twice releases the upstream exactly once."""
        upstream = FakeUpstreamStream([])
        session = RelaySession()
        session.transition(RelayState.VALIDATING)
        session.attach(upstream)
        session.transition(RelayState.STREAMING)

        await session.close()
        await session.close()

        check.equal(upstream.close_calls, 1)
        check.equal(session.state, RelayState.CANCELLED)
        check.is_true(session.cancelled)


class TestOpenSession:
    """Tests for validation before streaming."""

    async def test_builds_completion_request(self, relay_config: RelayConfig) -> None:
        engine, client = make_engine(relay_config)

        session = await engine.open_session(
            {"messages": [{"role": "user", "parts": [{"type": "text", "text": "ping"}]}]},
            request_id="req-42",
        )

        request = client.requests[0]
        check.equal(session.state, RelayState.STREAMING)
        check.equal(session.request_id, "req-42")
        check.equal(request.model, "gpt-4")
        check.equal(request.messages[0].content, "ping")
        check.equal(request.temperature, 0.7)
        check.equal(request.max_tokens, 2000)
        await session.close()

    async def test_blocked_model_is_substituted(self, relay_config: RelayConfig) -> None:
        engine, client = make_engine(relay_config)

        session = await engine.open_session({**HI, "model": "google/gemini-x"})

        assert client.requests[0].model == "gpt-4o-mini"
        await session.close()

    async def test_missing_credential_makes_no_upstream_call(self) -> None:
        engine, client = make_engine(RelayConfig(api_key=""))

        with pytest.raises(ConfigurationError):
            await engine.open_session(HI)

        assert client.requests == []

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"messages": {"role": "user", "content": "hi"}},
            {"messages": "hi"},
            {"messages": []},
            ["not", "an", "object"],
        ],
        ids=["absent", "object", "string", "empty", "array-body"],
    )
    async def test_invalid_body_makes_no_upstream_call(
        self, relay_config: RelayConfig, body: object
    ) -> None:
        engine, client = make_engine(relay_config)

        with pytest.raises(InvalidRequestError):
            await engine.open_session(body)

        assert client.requests == []

    async def test_upstream_open_failure_propagates(self, relay_config: RelayConfig) -> None:
        client = FakeUpstreamClient(open_error=UpstreamError("HTTP 503", upstream_status=503))
        engine = RelayEngine(relay_config, client)

        with pytest.raises(UpstreamError) as exc_info:
            await engine.open_session(HI)

        assert exc_info.value.upstream_status == 503


class TestRelay:
    """Tests for the streaming pump."""

    async def test_forwards_chunks_in_order(self, relay_config: RelayConfig) -> None:
        """Client receives "Hel" then "lo!" and the session completes."""
        engine, client = make_engine(relay_config)
        session = await engine.open_session(HI)

        frames = [frame async for frame in engine.relay(session, SSEEncoder())]
        events = decode_sse(frames)

        check.equal([e["content"] for e in events[:-1]], ["Hel", "lo!"])
        check.is_true(events[-1]["done"])
        check.equal(events[-1]["status"], "complete")
        check.equal(session.state, RelayState.COMPLETED)
        check.equal(session.chunks_forwarded, 2)
        check.equal(session.bytes_forwarded, sum(len(f) for f in frames[:-1]))
        check.equal(client.stream.close_calls, 1)

    async def test_n_chunks_give_n_units(self, relay_config: RelayConfig) -> None:
        parts = [f"token-{i} " for i in range(25)]
        engine, _ = make_engine(relay_config, FakeUpstreamStream(text_chunks(*parts)))
        session = await engine.open_session(HI)

        events = decode_sse([frame async for frame in engine.relay(session, SSEEncoder())])

        assert [e["content"] for e in events if not e["done"]] == parts

    async def test_natural_end_completes(self, relay_config: RelayConfig) -> None:
        stream = FakeUpstreamStream([StreamChunk(data="a"), StreamChunk(data="b")])
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)

        frames = [frame async for frame in engine.relay(session, SSEEncoder())]

        check.equal(len(frames), 3)
        check.equal(session.state, RelayState.COMPLETED)

    async def test_final_chunk_stops_reading(self, relay_config: RelayConfig) -> None:
        stream = FakeUpstreamStream(
            [StreamChunk(data="a"), StreamChunk(is_final=True), StreamChunk(data="late")]
        )
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)

        events = decode_sse([frame async for frame in engine.relay(session, SSEEncoder())])

        check.equal([e["content"] for e in events if not e["done"]], ["a"])
        check.equal(stream.reads, 2)

    async def test_reads_one_chunk_per_write(self, relay_config: RelayConfig) -> None:
        """The next upstream chunk is read only after the previous frame is taken."""
        stream = FakeUpstreamStream(text_chunks("a", "b", "c"))
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)
        frames = engine.relay(session, SSEEncoder())

        await frames.__anext__()
        check.equal(stream.reads, 1)
        await frames.__anext__()
        check.equal(stream.reads, 2)
        await frames.aclose()

    @pytest.mark.parametrize("k", [1, 3])
    async def test_disconnect_after_k_chunks_cancels(self, relay_config: RelayConfig, k: int) -> None:
        """Abandoning the stream closes upstream and reads nothing further."""
        stream = FakeUpstreamStream(text_chunks("a", "b", "c", "d", "e"))
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)
        frames = engine.relay(session, SSEEncoder())

        for _ in range(k):
            await frames.__anext__()
        await frames.aclose()

        check.equal(stream.reads, k)
        check.equal(stream.close_calls, 1)
        check.equal(session.state, RelayState.CANCELLED)

    async def test_unstarted_relay_is_cleaned_up_by_session(self, relay_config: RelayConfig) -> None:
        """A relay closed before its first frame leaves cleanup to the session."""
        stream = FakeUpstreamStream(text_chunks("a"))
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)

        await engine.relay(session, SSEEncoder()).aclose()
        await session.close()

        check.equal(stream.reads, 0)
        check.equal(stream.close_calls, 1)
        check.equal(session.state, RelayState.CANCELLED)

    async def test_mid_stream_error_is_reported_in_band(self, relay_config: RelayConfig) -> None:
        stream = FakeUpstreamStream(text_chunks("a", "b", "c"), error_after=2)
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)

        events = decode_sse([frame async for frame in engine.relay(session, SSEEncoder())])

        check.equal([e["content"] for e in events[:-1]], ["a", "b"])
        check.equal(events[-1]["status"], "error")
        check.is_in("connection reset", events[-1]["error"])
        check.equal(session.state, RelayState.FAILED)
        check.equal(stream.close_calls, 1)

    async def test_unexpected_mid_stream_error_fails_session(self, relay_config: RelayConfig) -> None:
        """A non-upstream fault is re-raised and recorded as a failure, not a disconnect."""
        stream = FakeUpstreamStream(text_chunks("a", "b"), error_after=1, error=RuntimeError("decoder bug"))
        engine, _ = make_engine(relay_config, stream)
        session = await engine.open_session(HI)
        frames: list[bytes] = []

        with pytest.raises(RuntimeError, match="decoder bug"):
            async for frame in engine.relay(session, SSEEncoder()):
                frames.append(frame)

        check.equal(len(frames), 1)
        check.equal(session.state, RelayState.FAILED)
        check.is_false(session.cancelled)
        check.equal(stream.close_calls, 1)

    async def test_relay_requires_streaming_session(self, relay_config: RelayConfig) -> None:
        engine, _ = make_engine(relay_config)

        with pytest.raises(RuntimeError, match="not streaming"):
            async for _ in engine.relay(RelaySession(), SSEEncoder()):
                pass
