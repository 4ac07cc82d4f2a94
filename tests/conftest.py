from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import anyio
import pytest
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from janus_session import JanusMessage, Plugin, Session, SessionSettings
from janus_session.memory import open_memory_session
from janus_session.types import Envelope, Inbound

VALID_PLUGINS = frozenset({"x.plugin.valid", "janus.plugin.echotest"})


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeGateway:
    """Scripted stand-in for a Janus gateway.

    Answers requests the way janus-gateway does, records every request it
    receives, and can be told to ignore or fail given request kinds.
    """

    def __init__(self, session_id: int = 1234, first_handle_id: int = 55) -> None:
        self.session_id = session_id
        self.next_handle_id = first_handle_id
        self.plugins = VALID_PLUGINS
        self.requests: list[Envelope] = []
        self.silent: set[str] = set()
        # Keyed by request kind, or by (kind, handle_id) to fail a single handle.
        self.failures: dict[str | tuple[str, Any], tuple[int, str]] = {}
        self.push_detached = False
        self._write_stream: MemoryObjectSendStream[Inbound] | None = None

    @property
    def kinds(self) -> list[str]:
        return [request["janus"] for request in self.requests]

    def replies(self, request: Envelope) -> list[Envelope]:
        kind = request["janus"]
        transaction = request["transaction"]
        base: Envelope = {"transaction": transaction}
        if "session_id" in request:
            base["session_id"] = request["session_id"]

        if kind in self.silent:
            return []
        failure = self.failures.get((kind, request.get("handle_id"))) or self.failures.get(kind)
        if failure is not None:
            code, reason = failure
            return [{**base, "janus": "error", "error": {"code": code, "reason": reason}}]

        if kind == "create":
            return [{**base, "janus": "success", "data": {"id": self.session_id}}]
        if kind == "attach":
            if request["plugin"] not in self.plugins:
                reason = f"No such plugin '{request['plugin']}'"
                return [{**base, "janus": "error", "error": {"code": 460, "reason": reason}}]
            handle_id = self.next_handle_id
            self.next_handle_id += 1
            return [{**base, "janus": "success", "data": {"id": handle_id}}]
        if kind == "detach":
            replies = [{**base, "janus": "success"}]
            if self.push_detached:
                replies.append({"janus": "detached", "session_id": self.session_id, "sender": request["handle_id"]})
            return replies
        if kind in ("destroy", "hangup"):
            return [{**base, "janus": "success"}]
        if kind in ("keepalive", "trickle"):
            return [{**base, "janus": "ack"}]
        if kind == "info":
            return [{**base, "janus": "server_info", "name": "Janus WebRTC Server", "version": 1500}]
        if kind == "message":
            event: Envelope = {
                **base,
                "janus": "event",
                "sender": request["handle_id"],
                "plugindata": {"plugin": "janus.plugin.echotest", "data": {"echotest": "event", "result": "ok"}},
            }
            if "jsep" in request:
                event["jsep"] = {"type": "answer", "sdp": "v=0\r\no=- answer"}
            return [{**base, "janus": "ack"}, event]
        return [{**base, "janus": "error", "error": {"code": 453, "reason": f"Unknown request '{kind}'"}}]

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[Envelope],
        write_stream: MemoryObjectSendStream[Inbound],
    ) -> None:
        self._write_stream = write_stream
        async for request in read_stream:
            self.requests.append(request)
            for reply in self.replies(request):
                await write_stream.send(reply)

    async def push(self, message: Envelope | Exception) -> None:
        """Deliver an unsolicited message to the session."""
        assert self._write_stream is not None, "gateway is not running"
        await self._write_stream.send(message)


class RecordingPlugin(Plugin):
    name = "x.plugin.valid"
    label = "recording"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.received: list[JanusMessage] = []
        self.received_event = anyio.Event()

    def receive(self, msg: JanusMessage) -> None:
        self.received.append(msg)
        self.received_event.set()

    async def wait_received(self, count: int = 1) -> None:
        with anyio.fail_after(1):
            while len(self.received) < count:
                await self.received_event.wait()
                self.received_event = anyio.Event()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


ConnectFn = Callable[..., AbstractAsyncContextManager[Session]]


@pytest.fixture
def connect(gateway: FakeGateway) -> ConnectFn:
    """Returns a factory opening a session wired to the fake gateway.

    Keyword arguments are passed to SessionSettings, except the session
    callbacks which are passed to Session.
    """

    @asynccontextmanager
    async def _connect(**kwargs: Any) -> AsyncIterator[Session]:
        callbacks = {
            key: kwargs.pop(key)
            for key in ("plugin_attached_callback", "keepalive_error_callback", "error_callback")
            if key in kwargs
        }
        async with open_memory_session(gateway.run, settings=SessionSettings(**kwargs), **callbacks) as session:
            yield session

    return _connect


@pytest.fixture
def recording_plugin_class() -> type[RecordingPlugin]:
    return RecordingPlugin
