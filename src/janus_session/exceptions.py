from typing import Any

from janus_session.types import Envelope, ErrorData


class JanusError(Exception):
    """Base class for errors raised by the session layer."""


class RemoteError(JanusError):
    """Exception raised when the gateway answers a request with an error.

    It wraps the ErrorData received from the gateway and provides access to
    the numeric error code and the reason text.

    Attributes:
        error: The ErrorData object received from the gateway
    """

    error: ErrorData

    def __init__(self, error: ErrorData):
        super().__init__(f"Janus error {error.code}: {error.reason}")
        self.error = error

    @property
    def code(self) -> int:
        return self.error.code

    @property
    def reason(self) -> str:
        return self.error.reason


class RequestTimeoutError(JanusError, TimeoutError):
    """No correlated response arrived within the request timeout."""

    def __init__(self, transaction: str, payload: Envelope, timeout: float):
        super().__init__(f"Signalling message timed out after {timeout} seconds: {payload!r}")
        self.transaction = transaction
        self.payload = payload
        self.timeout = timeout


class RoutingError(JanusError):
    """An inbound message cannot be routed to this session or any of its plugins.

    Raised for a session id mismatch or for a push message whose sender has no
    registered plugin. Both indicate a wiring defect in the embedding
    application, or a message that arrived after its plugin's cleanup grace
    period.
    """

    def __init__(self, message: str, msg: Any = None):
        super().__init__(message)
        self.msg = msg
