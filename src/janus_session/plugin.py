"""Plugin handles.

A Plugin is one attached handle on a session. It sends its requests through
the session's transaction mechanism and receives the push messages the
session routes to it. Every Janus plugin behaves differently, so subclasses
set `name` and override `receive()`, `on_attached()` and `on_detached()`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import anyio

from janus_session.types import ATTACH, DETACH, HANGUP, MESSAGE, TRICKLE, Envelope, HandleId, JanusMessage
from janus_session.utilities.logging import LoggerLike, ScopedLoggerAdapter, get_logger

if TYPE_CHECKING:
    from janus_session.session import Session

_log = get_logger(__name__)

PluginCallback = Callable[["Plugin"], None]


@runtime_checkable
class Capability(Protocol):
    """The plugin-specific behavior a handle provides."""

    def receive(self, msg: JanusMessage) -> None: ...

    def on_attached(self) -> None: ...

    def on_detached(self) -> None: ...


class Plugin:
    """
    The base behavior of a plugin: attach/detach and send/receive messages
    to/from the server-side plugin.

    Example:
        class VideoRoomPlugin(Plugin):
            name = "janus.plugin.videoroom"
            label = "videoroom"

            def receive(self, msg: JanusMessage) -> None:
                ...
    """

    name: str = "unset"
    """The plugin package name known to the gateway."""

    label: str = "unset"
    """Short name, only used in log prefixes."""

    def __init__(self, logger: LoggerLike | None = None) -> None:
        self.session: Session | None = None
        self.id: HandleId | None = None
        self.attached = False
        self.attached_at: float | None = None
        self.log = ScopedLoggerAdapter(logger or _log, lambda: f"plugin_{self.label}({self.id})")
        self._attached_callbacks: list[PluginCallback] = []
        self._detached_callbacks: list[PluginCallback] = []

    @property
    def uptime(self) -> float:
        """Seconds since the plugin was attached, 0 while detached."""
        if not self.attached or self.attached_at is None:
            return 0.0
        return anyio.current_time() - self.attached_at

    def add_attached_callback(self, callback: PluginCallback) -> None:
        """Call `callback` every time this plugin attaches."""
        self._attached_callbacks.append(callback)

    def add_detached_callback(self, callback: PluginCallback) -> None:
        """Call `callback` once, the next time this plugin detaches."""
        self._detached_callbacks.append(callback)

    async def attach(self, session: Session) -> JanusMessage:
        """
        Attach the server-side plugin (by `self.name`) to the session.

        `on_attached()` is called and the attached callbacks fire once the
        gateway has assigned a handle id.
        """
        self.log.debug("attach()")
        self.session = session

        response = await session.send({"janus": ATTACH, "plugin": self.name})
        self.id = response.data_id()
        self.attached = True
        self.attached_at = anyio.current_time()
        self.on_attached()
        for callback in list(self._attached_callbacks):
            callback(self)
        return response

    async def detach(self) -> JanusMessage:
        """
        Detach this plugin from the session.

        `on_detached()` is called and the pending detached callbacks fire
        once. The gateway will also push a `detached` event.
        """
        self.log.debug("detach()")
        response = await self.send({"janus": DETACH})
        self.mark_detached()
        return response

    def mark_detached(self) -> None:
        """
        Record that the handle is gone.

        Called after a successful `detach()`, and by subclasses when the
        gateway pushes a `detached` event for a handle it dropped on its own.
        Only the first call after an attach has any effect.
        """
        if not self.attached:
            return
        self.attached = False
        self.on_detached()
        callbacks, self._detached_callbacks = self._detached_callbacks, []
        for callback in callbacks:
            callback(self)

    async def send(self, obj: Envelope) -> JanusMessage:
        """
        Send a plugin-related message to the gateway.

        You should prefer the higher-level methods `send_message()`,
        `send_trickle()`, `hangup()`, `attach()` and `detach()`.
        """
        if self.session is None:
            raise RuntimeError(f"Plugin {self.name} is not attached to a session")
        self.log.debug(f"send() {obj.get('janus')}")
        return await self.session.send({"handle_id": self.id, **obj})

    async def send_message(
        self, body: dict[str, Any] | None = None, jsep: dict[str, Any] | None = None
    ) -> JanusMessage:
        """
        Send a message to the server-side plugin.

        The gateway requires a body, so an empty one is sent when none is
        given. When `jsep` is given the reply is the plugin's event carrying
        the negotiated answer rather than the gateway's acknowledgement.
        """
        msg: Envelope = {"janus": MESSAGE, "body": body or {}}
        if jsep:
            msg["jsep"] = jsep
        return await self.send(msg)

    async def send_trickle(self, candidate: dict[str, Any] | list[dict[str, Any]] | None) -> JanusMessage:
        """Send trickle ICE candidates. `None` signals the end of candidates."""
        if candidate is None:
            candidate = {"completed": True}
        return await self.send({"janus": TRICKLE, "candidate": candidate})

    async def hangup(self) -> JanusMessage:
        """Hang up the peer connection, but keep the plugin attached."""
        return await self.send({"janus": HANGUP})

    def receive(self, msg: JanusMessage) -> None:
        """
        Receive a push message routed here by the session.

        This method always contains plugin-specific logic and should be
        overridden.
        """
        if msg.sender != self.id:
            self.log.warning(
                f"Received message for {msg.sender}, but it is not for this plugin instance. "
                "This is probably a mistake of the application using this plugin."
            )
            return
        self.log.warning(f"Received {msg.janus} message, but handling it is plugin-specific. Override receive().")

    def on_attached(self) -> None:
        self.log.debug("on_attached(): nothing to do for this plugin")

    def on_detached(self) -> None:
        self.log.debug("on_detached(): nothing to do for this plugin")
