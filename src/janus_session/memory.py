"""
In-memory transport: run a session against a responder in the same process,
without network overhead.

A responder is any coroutine function taking the session's outgoing stream
and the stream feeding the session's input, such as `MessageReplayer.run`.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from janus_session.session import Session
from janus_session.types import Envelope, Inbound

Responder = Callable[[MemoryObjectReceiveStream[Envelope], MemoryObjectSendStream[Inbound]], Awaitable[None]]


@asynccontextmanager
async def open_memory_session(responder: Responder, **session_kwargs: Any) -> AsyncIterator[Session]:
    """Opens a Session whose gateway is `responder`.

    Keyword arguments are passed to `Session`. The responder is cancelled
    when the session context exits, and an error raised by the responder
    tears the session down.
    """
    outgoing_send, outgoing_receive = anyio.create_memory_object_stream[Envelope]()
    inbound_send, inbound_receive = anyio.create_memory_object_stream[Inbound]()

    async with outgoing_send, outgoing_receive, inbound_send, inbound_receive:
        async with anyio.create_task_group() as tg:
            tg.start_soon(responder, outgoing_receive, inbound_send)
            try:
                async with Session(outgoing_send, inbound_receive, **session_kwargs) as session:
                    yield session
            finally:
                tg.cancel_scope.cancel()
