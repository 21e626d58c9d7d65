"""Interceptors that validate request contents.

Each message passing through is checked for a ``validate`` method. Both the
older form ``validate()`` and the newer ``validate(all)`` are supported; the
newer form is called with ``False``. A validation failure, raised as any
exception, is turned into a ``StatusError`` with ``Code.INVALID_ARGUMENT``
that carries the failure's description.

Unary requests are checked before they reach the handler. For streaming
calls, messages are checked as the handler receives them.
"""

from __future__ import annotations

from typing import Any, Callable

from .context import Context
from .status import Code, StatusError
from .stream import ServerStream, StreamServerInfo, UnaryServerInfo


def _required_positional_count(method: Callable[..., Any]) -> int:
    """Count the positional parameters ``method`` needs, not counting a bound ``self``."""
    func = getattr(method, "__func__", method)
    code = getattr(func, "__code__", None)
    if code is None:
        return 0
    defaults = getattr(func, "__defaults__", None) or ()
    count = code.co_argcount - len(defaults)
    if getattr(method, "__self__", None) is not None and func is not method:
        count -= 1
    return max(count, 0)


def _call_validate(method: Callable[..., Any]) -> None:
    if _required_positional_count(method) > 0:
        method(False)
    else:
        method()


def validate(req: Any) -> None:
    """Validate ``req`` if it has a ``validate`` method; raise INVALID_ARGUMENT on failure."""
    method = getattr(req, "validate", None)
    if not callable(method):
        return
    try:
        _call_validate(method)
    except Exception as err:
        raise StatusError(Code.INVALID_ARGUMENT, str(err)) from err


def unary_server_interceptor() -> Callable[
    [Context, Any, UnaryServerInfo, Callable[[Context, Any], Any]], Any
]:
    """Return a unary server interceptor that rejects invalid requests before the handler."""

    def interceptor(
        ctx: Context, req: Any, info: UnaryServerInfo, handler: Callable[[Context, Any], Any]
    ) -> Any:
        validate(req)
        return handler(ctx, req)

    return interceptor


def unary_client_interceptor() -> Callable[..., Any]:
    """Return a unary client interceptor that rejects invalid requests before sending."""

    def interceptor(
        ctx: Context,
        method: str,
        req: Any,
        reply: Any,
        cc: Any,
        invoker: Callable[..., Any],
        *opts: Any,
    ) -> Any:
        validate(req)
        return invoker(ctx, method, req, reply, cc, *opts)

    return interceptor


class _ValidatingServerStream(ServerStream):
    """Server stream that validates every message it receives."""

    def __init__(self, stream: ServerStream) -> None:
        self._stream = stream

    def context(self) -> Context:
        return self._stream.context()

    def send_msg(self, message: Any) -> None:
        self._stream.send_msg(message)

    def recv_msg(self) -> Any:
        message = self._stream.recv_msg()
        validate(message)
        return message


def stream_server_interceptor() -> Callable[
    [Any, ServerStream, StreamServerInfo, Callable[[Any, ServerStream], Any]], Any
]:
    """Return a streaming server interceptor that validates each received message."""

    def interceptor(
        srv: Any,
        stream: ServerStream,
        info: StreamServerInfo,
        handler: Callable[[Any, ServerStream], Any],
    ) -> Any:
        return handler(srv, _ValidatingServerStream(stream))

    return interceptor