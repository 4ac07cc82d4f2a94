"""A client-side session layer for the Janus WebRTC gateway's JSON protocol.

Use janus-session to:

- Create and destroy sessions on a Janus gateway
- Attach plugin handles and receive the events the gateway pushes to them
- Correlate requests and replies with timeouts over any duplex channel
- Keep idle sessions alive

## Example

```python
from janus_session import Session
from janus_session.plugins import EchoTestPlugin

async with Session(write_stream, read_stream) as session:
    await session.create()
    echotest = EchoTestPlugin()
    await session.attach_plugin(echotest)
    await echotest.set_video(False)
    await session.destroy()
```

The transport is up to the application: it serializes the envelopes the
session writes to `write_stream` and feeds decoded replies back through
`read_stream` (or calls `Session.receive()` directly).
"""

import logging

from .exceptions import JanusError, RemoteError, RequestTimeoutError, RoutingError
from .plugin import Capability, Plugin
from .session import Session
from .settings import SessionSettings
from .types import ErrorData, JanusMessage

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Capability",
    "ErrorData",
    "JanusError",
    "JanusMessage",
    "Plugin",
    "RemoteError",
    "RequestTimeoutError",
    "RoutingError",
    "Session",
    "SessionSettings",
]
