"""Logging utilities for janus-session."""

import logging
from collections.abc import Mapping
from typing import Any, Literal, Protocol

from rich.console import Console
from rich.logging import RichHandler


class LoggerLike(Protocol):
    """The leveled logging interface a session or plugin accepts.

    A `logging.Logger` or `logging.LoggerAdapter` satisfies it.
    """

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


class ScopedLoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Prefixes every record with a scope such as `plugin_echotest(55)`.

    The scope is computed per record so that it reflects identifiers assigned
    after the adapter was created.
    """

    def __init__(self, logger: LoggerLike, scope: Any):
        super().__init__(logger, {})  # type: ignore[arg-type]
        self._scope = scope

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        scope = self._scope() if callable(self._scope) else self._scope
        return f"{scope} {msg}", kwargs


def get_logger(name: str) -> logging.Logger:
    """Get a logger nested under the janus_session namespace.

    Args:
        name: the name of the logger, which will be prefixed with 'janus_session.'

    Returns:
        a configured logger instance
    """
    if name == "janus_session" or name.startswith("janus_session."):
        return logging.getLogger(name)
    return logging.getLogger(f"janus_session.{name}")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """Configure logging for applications embedding a session.

    Args:
        level: the log level to use
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def redact_jsep(data: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    """Return a shallow copy with SDP bodies shortened for debug logging.

    SDP blobs are long and carry ICE credentials, so only a short prefix is
    kept.
    """
    if data is None:
        return None

    redacted: dict[str, Any] = dict(data)
    jsep = redacted.get("jsep")
    if isinstance(jsep, Mapping) and isinstance(jsep.get("sdp"), str):
        sdp = jsep["sdp"]
        redacted["jsep"] = {**jsep, "sdp": sdp[:16] + "..." if len(sdp) > 16 else "***"}
    return redacted
