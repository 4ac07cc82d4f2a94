"""Envelope types for the Janus JSON signalling protocol.

Only the fields the session layer needs for correlation and routing are
modelled. Everything else a gateway sends is kept as extra fields so that
plugins can read them without the session knowing about them.
"""

from typing import Any, Final

from pydantic import BaseModel, ConfigDict

# Message kinds carried in the `janus` discriminator field.
CREATE: Final[str] = "create"
DESTROY: Final[str] = "destroy"
ATTACH: Final[str] = "attach"
DETACH: Final[str] = "detach"
MESSAGE: Final[str] = "message"
TRICKLE: Final[str] = "trickle"
HANGUP: Final[str] = "hangup"
KEEPALIVE: Final[str] = "keepalive"
INFO: Final[str] = "info"

ACK: Final[str] = "ack"
SUCCESS: Final[str] = "success"
ERROR: Final[str] = "error"
EVENT: Final[str] = "event"
SERVER_INFO: Final[str] = "server_info"
DETACHED: Final[str] = "detached"
WEBRTCUP: Final[str] = "webrtcup"
MEDIA: Final[str] = "media"
SLOWLINK: Final[str] = "slowlink"

# Gateway error codes the library refers to by name.
PLUGIN_NOT_FOUND: Final[int] = 460

SessionId = int | str
HandleId = int | str
Envelope = dict[str, Any]


class ErrorData(BaseModel):
    """Error object sent by the gateway alongside `janus: "error"`."""

    model_config = ConfigDict(extra="allow")

    code: int
    reason: str = ""


class JanusMessage(BaseModel):
    """An inbound message, either a reply to a transaction or a push event."""

    model_config = ConfigDict(extra="allow")

    janus: str
    transaction: str | None = None
    session_id: SessionId | None = None
    sender: HandleId | None = None
    data: dict[str, Any] | None = None
    error: ErrorData | None = None
    jsep: dict[str, Any] | None = None
    plugindata: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.janus == ERROR

    def data_id(self) -> SessionId:
        """The identifier the gateway assigned in a create or attach reply."""
        if self.data is None or "id" not in self.data:
            raise ValueError(f"Janus {self.janus} reply carries no data.id")
        return self.data["id"]


# What a transport hands to a session: a decoded message or a transport error.
Inbound = Envelope | JanusMessage | Exception


def parse_message(raw: Envelope | JanusMessage) -> JanusMessage:
    """Validate a decoded inbound message."""
    if isinstance(raw, JanusMessage):
        return raw
    return JanusMessage.model_validate(raw)
