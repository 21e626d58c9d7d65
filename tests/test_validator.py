from dataclasses import dataclass

import pytest

from rpcmiddleware.context import background
from rpcmiddleware.status import Code, StatusError
from rpcmiddleware.stream import EndOfStream, ServerStream, StreamServerInfo, UnaryServerInfo
from rpcmiddleware.validator import (
    stream_server_interceptor,
    unary_client_interceptor,
    unary_server_interceptor,
    validate,
)

MAX_INT16 = 32767


@dataclass
class PingRequest:
    value: str = ""
    sleep_time_ms: int = 0

    def validate(self):
        if self.sleep_time_ms > 10000:
            raise ValueError("sleep_time_ms must be at most 10000")


@dataclass
class PingResponse:
    counter: int = 0

    def validate(self, all):
        if self.counter > MAX_INT16:
            raise ValueError("counter must fit in int16")


GOOD_PING = PingRequest(value="something", sleep_time_ms=9999)
BAD_PING = PingRequest(value="something", sleep_time_ms=10001)
GOOD_RESPONSE = PingResponse(counter=100)
BAD_RESPONSE = PingResponse(counter=MAX_INT16 + 1)


class FakeServerStream(ServerStream):
    def __init__(self, messages):
        self._messages = list(messages)
        self.sent = []

    def context(self):
        return background()

    def send_msg(self, message):
        self.sent.append(message)

    def recv_msg(self):
        if not self._messages:
            raise EndOfStream()
        return self._messages.pop(0)


def test_validate_wrapper():
    assert validate(GOOD_PING) is None
    with pytest.raises(StatusError) as info:
        validate(BAD_PING)
    assert info.value.code is Code.INVALID_ARGUMENT
    assert info.value.message == "sleep_time_ms must be at most 10000"

    assert validate(GOOD_RESPONSE) is None
    with pytest.raises(StatusError) as info:
        validate(BAD_RESPONSE)
    assert info.value.code is Code.INVALID_ARGUMENT
    assert info.value.message == "counter must fit in int16"


def test_validate_ignores_messages_without_validate():
    assert validate("plain") is None


def test_unary_server_valid_passes():
    interceptor = unary_server_interceptor()
    result = interceptor(background(), GOOD_PING, UnaryServerInfo("/svc/Ping"), lambda c, r: r.value)
    assert result == "something"


def test_unary_server_invalid_errors():
    calls = []
    interceptor = unary_server_interceptor()
    with pytest.raises(StatusError) as info:
        interceptor(background(), BAD_PING, UnaryServerInfo("/svc/Ping"), lambda c, r: calls.append(r))
    assert info.value.code is Code.INVALID_ARGUMENT
    assert calls == []


def test_server_stream_valid_passes():
    interceptor = stream_server_interceptor()
    stream = FakeServerStream([GOOD_PING])
    info = StreamServerInfo("/svc/PingList", is_server_stream=True)

    def handler(srv, s):
        s.send_msg(s.recv_msg())

    interceptor(None, stream, info, handler)
    assert stream.sent == [GOOD_PING]


def test_server_stream_invalid_errors_on_first_message():
    interceptor = stream_server_interceptor()
    stream = FakeServerStream([BAD_PING])
    info = StreamServerInfo("/svc/PingList", is_server_stream=True)
    with pytest.raises(StatusError) as err:
        interceptor(None, stream, info, lambda srv, s: s.recv_msg())
    assert err.value.code is Code.INVALID_ARGUMENT


def test_bidi_stream_rejects_only_bad_message():
    interceptor = stream_server_interceptor()
    stream = FakeServerStream([GOOD_PING, GOOD_PING, BAD_PING])
    info = StreamServerInfo("/svc/PingStream", is_client_stream=True, is_server_stream=True)
    received = []

    def handler(srv, s):
        while True:
            try:
                received.append(s.recv_msg())
            except EndOfStream:
                return

    with pytest.raises(StatusError) as err:
        interceptor(None, stream, info, handler)
    assert err.value.code is Code.INVALID_ARGUMENT
    assert received == [GOOD_PING, GOOD_PING]


def test_client_valid_passes():
    interceptor = unary_client_interceptor()
    calls = []

    def invoker(ctx, method, req, reply, cc, *opts):
        calls.append((method, req, opts))
        return "pong"

    assert interceptor(background(), "/svc/Ping", GOOD_PING, None, None, invoker, "opt") == "pong"
    assert calls == [("/svc/Ping", GOOD_PING, ("opt",))]


def test_client_invalid_errors():
    interceptor = unary_client_interceptor()
    calls = []
    with pytest.raises(StatusError) as err:
        interceptor(background(), "/svc/Ping", BAD_PING, None, None, lambda *a: calls.append(a))
    assert err.value.code is Code.INVALID_ARGUMENT
    assert calls == []