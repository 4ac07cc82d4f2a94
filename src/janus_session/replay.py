"""Record and replay conversations with a gateway.

A tape is a JSON list of `{"incoming": bool, "payload": {...}}` entries in
the order they crossed the wire. Recording a session against a live gateway
once and replaying the tape afterwards lets tests run without a gateway.
Replay relies on the session generating the same transaction tokens as in
the recording, which holds as long as the requests are issued in the same
order.
"""

from pathlib import Path
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import BaseModel, TypeAdapter

from janus_session.memory import Responder
from janus_session.types import Envelope, Inbound, JanusMessage
from janus_session.utilities.logging import get_logger

logger = get_logger(__name__)


class TapeEntry(BaseModel):
    incoming: bool
    payload: dict[str, Any]


Tape = list[TapeEntry]
TapeAdapter: TypeAdapter[Tape] = TypeAdapter(Tape)


class ReplayMismatchError(Exception):
    """The session sent something the tape did not expect at this point."""


def load_tape(path: str | Path) -> Tape:
    return TapeAdapter.validate_json(Path(path).read_bytes())


def save_tape(tape: Tape, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(TapeAdapter.dump_json(tape, indent=2))


class MessageReplayer:
    """Stands in for a gateway by playing back a tape.

    Every outgoing message from the session consumes the next outgoing entry
    of the tape; all incoming entries that follow it are then delivered to the
    session.
    """

    def __init__(self, tape: Tape) -> None:
        self.tape = tape
        self.position = 0

    @classmethod
    def from_file(cls, path: str | Path) -> "MessageReplayer":
        return cls(load_tape(path))

    @property
    def finished(self) -> bool:
        return self.position >= len(self.tape)

    def replies_to(self, outgoing: Envelope) -> list[dict[str, Any]]:
        """Advance past the recorded counterpart of `outgoing` and return the replies."""
        if self.finished:
            raise ReplayMismatchError(f"Tape exhausted, cannot answer {outgoing.get('janus')}")

        expected = self.tape[self.position]
        if expected.incoming or expected.payload.get("janus") != outgoing.get("janus"):
            raise ReplayMismatchError(
                f"Tape position {self.position} expected {expected.payload.get('janus')!r} "
                f"(incoming={expected.incoming}), session sent {outgoing.get('janus')!r}"
            )
        self.position += 1

        replies: list[dict[str, Any]] = []
        while not self.finished and self.tape[self.position].incoming:
            replies.append(self.tape[self.position].payload)
            self.position += 1
        return replies

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[Envelope],
        write_stream: MemoryObjectSendStream[Inbound],
    ) -> None:
        """Answer the session's messages from the tape until its output closes."""
        async for outgoing in read_stream:
            for reply in self.replies_to(outgoing):
                logger.debug(f"Replaying {reply.get('janus')} for transaction {reply.get('transaction')}")
                await write_stream.send(reply)


class MessageRecorder:
    """Records the traffic between a session and a gateway as a tape.

    Wraps a responder (anything `MessageReplayer.run` could stand in for) and
    is itself used as the responder, so it sees both directions.
    """

    def __init__(self, responder: Responder) -> None:
        self.responder = responder
        self.tape: Tape = []

    async def run(
        self,
        read_stream: MemoryObjectReceiveStream[Envelope],
        write_stream: MemoryObjectSendStream[Inbound],
    ) -> None:
        to_gateway_send, to_gateway_receive = anyio.create_memory_object_stream[Envelope]()
        from_gateway_send, from_gateway_receive = anyio.create_memory_object_stream[Inbound]()

        async with to_gateway_send, to_gateway_receive, from_gateway_send, from_gateway_receive:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self.responder, to_gateway_receive, from_gateway_send)
                tg.start_soon(self._record_incoming, from_gateway_receive, write_stream)
                async for payload in read_stream:
                    self.tape.append(TapeEntry(incoming=False, payload=payload))
                    await to_gateway_send.send(payload)
                tg.cancel_scope.cancel()

    async def _record_incoming(
        self,
        gateway_output: MemoryObjectReceiveStream[Inbound],
        session_input: MemoryObjectSendStream[Inbound],
    ) -> None:
        async for item in gateway_output:
            # Transport errors are passed on but are not part of the conversation.
            if not isinstance(item, Exception):
                payload = item.model_dump(exclude_none=True) if isinstance(item, JanusMessage) else item
                self.tape.append(TapeEntry(incoming=True, payload=payload))
            await session_input.send(item)

    def save(self, path: str | Path) -> None:
        save_tape(self.tape, path)
