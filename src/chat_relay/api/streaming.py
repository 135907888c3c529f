"""Streaming response bound to a relay session."""

import logging
from collections.abc import AsyncGenerator
from typing import Any

import anyio
from starlette.requests import ClientDisconnect
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from chat_relay.relay.engine import RelaySession

logger = logging.getLogger(__name__)


class RelayStreamingResponse(StreamingResponse):
    """StreamingResponse that always tears down its relay session.

    A failed write or a disconnect-driven cancellation marks the session
    cancelled. Whatever way the response ends, the frame generator and the
    session's upstream stream are closed before ``__call__`` returns.
    """

    def __init__(
        self,
        session: RelaySession,
        frames: AsyncGenerator[bytes],
        **kwargs: Any,
    ) -> None:
        super().__init__(frames, **kwargs)
        self.session = session
        self._frames = frames

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except (ClientDisconnect, OSError):
            self.session.cancel()
            logger.info(f"[{self.session.request_id}] Client connection closed during write")
        finally:
            with anyio.CancelScope(shield=True):
                await self._frames.aclose()
                await self.session.close()
