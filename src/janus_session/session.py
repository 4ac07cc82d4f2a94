"""Client-side Janus session.

A Session turns a duplex message channel into an async request/response API:

* create/destroy the session on the gateway
* attach plugins and route their push messages to them
* correlate replies to requests by transaction token, with timeouts
* keep the session alive while the application is idle

The session never touches a socket. Outgoing envelopes are written to
`write_stream` for a transport to serialize and send; the transport hands
every decoded inbound message to `receive()`, or writes it to `read_stream`
which the session drains on its own.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType, TracebackType
from typing import TYPE_CHECKING, Protocol

import anyio
import anyio.abc
import anyio.lowlevel
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from pydantic import ValidationError
from typing_extensions import Self

from janus_session.exceptions import JanusError, RemoteError, RequestTimeoutError, RoutingError
from janus_session.settings import SessionSettings
from janus_session.types import (
    ACK,
    CREATE,
    DESTROY,
    INFO,
    KEEPALIVE,
    Envelope,
    ErrorData,
    HandleId,
    Inbound,
    JanusMessage,
    SessionId,
    parse_message,
)
from janus_session.utilities.logging import LoggerLike, get_logger, redact_jsep
from janus_session.utilities.task_group import settle_all

if TYPE_CHECKING:
    from janus_session.plugin import Plugin

_log = get_logger(__name__)


class PluginAttachedFnT(Protocol):
    async def __call__(self, plugin: Plugin, response: JanusMessage) -> None: ...


class KeepaliveErrorFnT(Protocol):
    async def __call__(self, error: Exception) -> None: ...


class ErrorFnT(Protocol):
    async def __call__(self, error: Exception) -> None: ...


async def _default_plugin_attached_callback(plugin: Plugin, response: JanusMessage) -> None:
    await anyio.lowlevel.checkpoint()


async def _default_keepalive_error_callback(error: Exception) -> None:
    pass


async def _default_error_callback(error: Exception) -> None:
    pass


class PendingTransaction:
    """A request waiting for its correlated reply.

    Settled exactly once, either with the reply or with an error.
    """

    def __init__(self, transaction: str, payload: Envelope) -> None:
        self.transaction = transaction
        self.payload = payload
        self.response: JanusMessage | None = None
        self.error: JanusError | None = None
        self._settled = anyio.Event()

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    def resolve(self, response: JanusMessage) -> None:
        assert not self.settled, f"Transaction {self.transaction} already settled"
        self.response = response
        self._settled.set()

    def reject(self, error: JanusError) -> None:
        assert not self.settled, f"Transaction {self.transaction} already settled"
        self.error = error
        self._settled.set()

    async def wait(self) -> None:
        await self._settled.wait()

    def result(self) -> JanusMessage:
        if self.error is not None:
            raise self.error
        assert self.response is not None
        return self.response


@dataclass
class AttachedPlugin:
    """Registry entry for a plugin attached to a session."""

    plugin: Plugin
    cleanup_scope: anyio.CancelScope | None = None


class Session:
    """
    Implements a Janus session on top of an output stream, including
    request/response correlation, push-message routing to plugins, keepalive
    and plugin cleanup.

    This class is an async context manager. Timers and the optional inbound
    loop run in a task group that lives as long as the context; leaving it
    cancels them all.

    Example:
        async with Session(write_stream, read_stream) as session:
            await session.create()
            await session.attach_plugin(EchoTestPlugin())
            ...
            await session.destroy()
    """

    id: SessionId | None
    plugins: dict[HandleId, AttachedPlugin]

    def __init__(
        self,
        write_stream: MemoryObjectSendStream[Envelope],
        read_stream: MemoryObjectReceiveStream[Inbound] | None = None,
        *,
        settings: SessionSettings | None = None,
        logger: LoggerLike | None = None,
        plugin_attached_callback: PluginAttachedFnT | None = None,
        keepalive_error_callback: KeepaliveErrorFnT | None = None,
        error_callback: ErrorFnT | None = None,
    ) -> None:
        self._write_stream = write_stream
        self._read_stream = read_stream
        self.settings = settings or SessionSettings()
        self.log: LoggerLike = logger or _log
        self._plugin_attached_callback = plugin_attached_callback or _default_plugin_attached_callback
        self._keepalive_error_callback = keepalive_error_callback or _default_keepalive_error_callback
        self._error_callback = error_callback or _default_error_callback

        self.id = None
        self.plugins = {}
        self._next_transaction = 0
        self._transactions: dict[str, PendingTransaction] = {}
        self._keepalive_scope: anyio.CancelScope | None = None
        self._task_group: anyio.abc.TaskGroup | None = None
        self._destroyed = False

    async def __aenter__(self) -> Self:
        self._task_group = anyio.create_task_group()
        await self._task_group.__aenter__()
        if self._read_stream is not None:
            self._task_group.start_soon(self._receive_loop)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool | None:
        self.stop()
        task_group, self._task_group = self._task_group, None
        assert task_group is not None
        # Leaving the session must not wait for timers to elapse.
        task_group.cancel_scope.cancel()
        return await task_group.__aexit__(exc_type, exc_val, exc_tb)

    @property
    def pending_transactions(self) -> Mapping[str, PendingTransaction]:
        """Read-only view of the transactions still waiting for a reply."""
        return MappingProxyType(self._transactions)

    @property
    def keepalive_active(self) -> bool:
        return self._keepalive_scope is not None

    async def create(self) -> JanusMessage:
        """
        Create this session on the gateway and remember the assigned id.

        Raises RemoteError if the gateway answers with an error, and
        RequestTimeoutError if it does not answer in time.
        """
        if self.id is not None:
            raise RuntimeError(f"Session {self.id} has already been created")

        response = await self.send({"janus": CREATE})
        self.id = response.data_id()
        self.log.info(f"Session {self.id} created")
        return response

    async def destroy(self) -> JanusMessage:
        """
        Destroy this session on the gateway, detaching all plugins first.

        Every attached plugin is detached concurrently and all detaches must
        complete before the destroy request goes out. A failed detach does not
        interrupt the others; once all have settled it is raised and the
        session is not destroyed.

        After a successful destroy no keepalive is sent and all plugin
        registry entries are dropped. Requests already in flight are left to
        their own replies or timeouts.
        """
        attached = [entry.plugin for entry in self.plugins.values() if entry.plugin.attached]
        self.log.debug(f"Detaching {len(attached)} plugin(s) before destroying session {self.id}")
        await settle_all((plugin.detach for plugin in attached), "detaching plugins failed")

        response = await self.send({"janus": DESTROY})
        self._destroyed = True
        self.stop_keepalive()
        for entry in self.plugins.values():
            if entry.cleanup_scope is not None:
                entry.cleanup_scope.cancel()
        self.plugins.clear()
        self.log.info(f"Session {self.id} destroyed")
        return response

    async def attach_plugin(self, plugin: Plugin) -> JanusMessage:
        """
        Attach a plugin to this session and start routing its push messages.

        When the plugin later detaches, its registry entry is kept for the
        cleanup grace period so that late push messages still reach it.
        """
        self.log.debug(f"Attaching plugin {plugin.name}")
        response = await plugin.attach(self)

        assert plugin.id is not None
        self.plugins[plugin.id] = AttachedPlugin(plugin)
        plugin.add_detached_callback(self._plugin_detached)
        self.log.info(f"Plugin {plugin.name} attached as handle {plugin.id}")

        await self._plugin_attached_callback(plugin, response)
        return response

    async def info(self) -> JanusMessage:
        """Ask the gateway for its server info."""
        return await self.send({"janus": INFO})

    def receive(self, msg: Envelope | JanusMessage) -> None:
        """
        Receive a message sent by the gateway.

        The transport is responsible for calling this once per decoded
        message. Replies settle their pending transaction; push messages are
        forwarded to the plugin named by `sender`.

        Raises:
            RoutingError: if the message belongs to another session, or its
                sender has no registered plugin
        """
        message = parse_message(msg)
        self.log.debug(f"Receiving message from Janus {message.janus} (transaction={message.transaction})")

        if message.session_id is not None and str(message.session_id) != str(self.id):
            raise RoutingError(
                f"Got passed a message for session {message.session_id}, this is session {self.id}",
                message,
            )

        if message.transaction is not None:
            pending = self._transactions.get(message.transaction)
            if pending is not None:
                # A jsep request is first acknowledged, then answered by an
                # event under the same transaction. Only the event settles it.
                if message.janus == ACK and pending.payload.get("jsep") is not None:
                    return

                del self._transactions[message.transaction]
                if message.is_error:
                    error = message.error or ErrorData(code=0, reason="error reply without error object")
                    self.log.error(f"Got error {error.code} from Janus: {error.reason}")
                    pending.reject(RemoteError(error))
                else:
                    pending.resolve(message)
                return

        # A push message, or an asynchronous reply to a transaction that has
        # already been settled above.
        if message.sender is not None:
            entry = self._find_plugin(message.sender)
            if entry is None:
                self.log.error(f"Could not find plugin {message.sender} that sent this message")
                raise RoutingError(f"No plugin registered for sender {message.sender}", message)
            entry.plugin.receive(message)
            return

        self.log.debug(f"Ignoring {message.janus} message without pending transaction or sender")

    async def send(self, msg: Envelope) -> JanusMessage:
        """
        Send a message to the gateway and wait for the correlated reply.

        You should prefer the higher-level methods such as `create()`,
        `destroy()` or the plugin methods. A fresh `transaction` token and,
        once known, the `session_id` are added to a copy of `msg`. Any
        outgoing message postpones the next keepalive.

        Raises:
            RemoteError: if the reply signals an error
            RequestTimeoutError: if no reply arrives within the request timeout
        """
        self._next_transaction += 1
        transaction = str(self._next_transaction)
        payload: Envelope = {**msg, "transaction": transaction}
        if self.id is not None:
            payload["session_id"] = self.id

        pending = PendingTransaction(transaction, payload)
        self._transactions[transaction] = pending
        timeout = self.settings.request_timeout_seconds

        self.log.debug(f"Outgoing Janus message {redact_jsep(payload)}")
        try:
            with anyio.move_on_after(timeout):
                await self._write_stream.send(payload)
                self.reset_keepalive()
                await pending.wait()
        except BaseException:
            self._transactions.pop(transaction, None)
            raise

        if not pending.settled:
            self._transactions.pop(transaction, None)
            self.log.warning(f"Transaction {transaction} ({msg.get('janus')}) timed out after {timeout} seconds")
            raise RequestTimeoutError(transaction, payload, timeout)

        return pending.result()

    def stop(self) -> None:
        """
        Various cleanup operations.

        Call this before unreferencing a session that is not used as a
        context manager anymore.
        """
        self.log.debug("stop()")
        self.stop_keepalive()

    async def send_keepalive(self) -> None:
        """Send a keepalive, reporting failure through the keepalive error callback.

        Runs from the keepalive timer, so any failure, a broken output stream
        included, is reported instead of raised into the session's task group.
        """
        try:
            await self.send({"janus": KEEPALIVE})
        except Exception as exc:
            self.log.error(f"Keepalive failed: {exc}")
            await self._keepalive_error_callback(exc)

    def stop_keepalive(self) -> None:
        if self._keepalive_scope is not None:
            self._keepalive_scope.cancel()
            self._keepalive_scope = None

    def reset_keepalive(self) -> None:
        self.stop_keepalive()
        if self._destroyed:
            return

        scope = anyio.CancelScope()
        self._keepalive_scope = scope
        self._require_task_group().start_soon(self._keepalive_after, scope)

    async def _keepalive_after(self, scope: anyio.CancelScope) -> None:
        with scope:
            await anyio.sleep(self.settings.keepalive_interval_seconds)
        if scope.cancel_called:
            return
        if self._keepalive_scope is scope:
            self._keepalive_scope = None
        await self.send_keepalive()

    def _plugin_detached(self, plugin: Plugin) -> None:
        entry = self.plugins.get(plugin.id) if plugin.id is not None else None
        if entry is None or entry.plugin is not plugin:
            return

        grace = self.settings.cleanup_grace_seconds
        self.log.debug(f"Plugin {plugin.name} detached. Removing reference {plugin.id} in {grace} seconds")
        scope = anyio.CancelScope()
        entry.cleanup_scope = scope
        self._require_task_group().start_soon(self._cleanup_after, plugin.id, entry, scope)

    async def _cleanup_after(self, handle_id: HandleId, entry: AttachedPlugin, scope: anyio.CancelScope) -> None:
        with scope:
            await anyio.sleep(self.settings.cleanup_grace_seconds)
        if scope.cancel_called:
            return
        if self.plugins.get(handle_id) is entry:
            del self.plugins[handle_id]
            self.log.debug(f"Removed reference to detached plugin {handle_id}")

    async def _receive_loop(self) -> None:
        assert self._read_stream is not None
        try:
            async for item in self._read_stream:
                if isinstance(item, Exception):
                    self.log.error(f"Transport error: {item}")
                    await self._error_callback(item)
                    continue

                try:
                    self.receive(item)
                except RoutingError as exc:
                    self.log.warning(f"Dropping unroutable message: {exc}")
                    await self._error_callback(exc)
                except ValidationError as exc:
                    self.log.warning(f"Failed to validate message: {exc}. Message was: {item}")
                    await self._error_callback(exc)
        except anyio.ClosedResourceError:
            self.log.debug("Read stream closed")

    def _find_plugin(self, sender: HandleId) -> AttachedPlugin | None:
        entry = self.plugins.get(sender)
        if entry is None:
            # Transports may deliver numeric handle ids as strings or vice versa.
            key = str(sender)
            entry = next((entry for handle_id, entry in self.plugins.items() if str(handle_id) == key), None)
        return entry

    def _require_task_group(self) -> anyio.abc.TaskGroup:
        if self._task_group is None:
            raise RuntimeError("Session must be used as an async context manager")
        return self._task_group
