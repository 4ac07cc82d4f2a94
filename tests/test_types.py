import pytest
from pydantic import ValidationError

from janus_session import ErrorData, JanusMessage, RemoteError, RequestTimeoutError, RoutingError
from janus_session.exceptions import JanusError
from janus_session.types import PLUGIN_NOT_FOUND, parse_message


def test_parse_keeps_extra_fields():
    message = parse_message({"janus": "media", "session_id": 1, "sender": 2, "type": "audio", "receiving": True})

    assert message.janus == "media"
    assert message.sender == 2
    assert message.type == "audio"  # type: ignore[attr-defined]
    assert message.model_dump(exclude_none=True)["receiving"] is True


def test_parse_passes_messages_through():
    message = JanusMessage(janus="ack", transaction="1")
    assert parse_message(message) is message


def test_parse_requires_janus_field():
    with pytest.raises(ValidationError):
        parse_message({"transaction": "1"})


def test_error_reply():
    message = parse_message(
        {"janus": "error", "transaction": "3", "error": {"code": PLUGIN_NOT_FOUND, "reason": "No such plugin 'x'"}}
    )

    assert message.is_error
    assert message.error == ErrorData(code=460, reason="No such plugin 'x'")


def test_data_id():
    assert parse_message({"janus": "success", "data": {"id": 1234}}).data_id() == 1234
    assert parse_message({"janus": "success", "data": {"id": "abcd"}}).data_id() == "abcd"

    with pytest.raises(ValueError):
        parse_message({"janus": "success"}).data_id()
    with pytest.raises(ValueError):
        parse_message({"janus": "success", "data": {}}).data_id()


def test_remote_error():
    error = RemoteError(ErrorData(code=458, reason="No such session 99"))

    assert isinstance(error, JanusError)
    assert error.code == 458
    assert error.reason == "No such session 99"
    assert str(error) == "Janus error 458: No such session 99"


def test_request_timeout_error_is_a_timeout():
    error = RequestTimeoutError("7", {"janus": "keepalive", "transaction": "7"}, 0.5)

    assert isinstance(error, TimeoutError)
    assert isinstance(error, JanusError)
    assert error.transaction == "7"
    assert "0.5 seconds" in str(error)


def test_routing_error_keeps_message():
    message = JanusMessage(janus="event", sender=77)
    error = RoutingError("no plugin", message)

    assert error.msg is message
    assert str(error) == "no plugin"
