"""Server interceptors that recover from handler panics.

A handler "panics" when it raises any exception other than ``StatusError``.
By default the panic is turned into a ``StatusError`` with ``Code.INTERNAL``
whose message is the text of the exception. The handling can be customised
by providing an alternate recovery function.
"""

from __future__ import annotations

from typing import Any, Callable

from .context import Context
from .status import Code, StatusError
from .stream import ServerStream, StreamServerInfo, UnaryServerInfo

RecoveryHandler = Callable[[BaseException], "BaseException | None"]
RecoveryHandlerContext = Callable[[Context, BaseException], "BaseException | None"]


def _resolve_handler(
    recovery_handler: RecoveryHandler | None,
    recovery_handler_context: RecoveryHandlerContext | None,
) -> RecoveryHandlerContext | None:
    if recovery_handler is not None and recovery_handler_context is not None:
        raise ValueError("give either recovery_handler or recovery_handler_context, not both")
    if recovery_handler is not None:
        handler = recovery_handler
        return lambda ctx, panic: handler(panic)
    return recovery_handler_context


def _recover_from(
    ctx: Context, panic: BaseException, handler: RecoveryHandlerContext | None
) -> BaseException | None:
    if handler is None:
        return StatusError(Code.INTERNAL, str(panic))
    return handler(ctx, panic)


def unary_server_interceptor(
    *,
    recovery_handler: RecoveryHandler | None = None,
    recovery_handler_context: RecoveryHandlerContext | None = None,
) -> Callable[[Context, Any, UnaryServerInfo, Callable[[Context, Any], Any]], Any]:
    """Return a unary server interceptor that recovers from panics."""
    recover = _resolve_handler(recovery_handler, recovery_handler_context)

    def interceptor(
        ctx: Context, req: Any, info: UnaryServerInfo, handler: Callable[[Context, Any], Any]
    ) -> Any:
        try:
            return handler(ctx, req)
        except StatusError:
            raise
        except Exception as panic:
            err = _recover_from(ctx, panic, recover)
            if err is None:
                return None
            raise err from panic

    return interceptor


def stream_server_interceptor(
    *,
    recovery_handler: RecoveryHandler | None = None,
    recovery_handler_context: RecoveryHandlerContext | None = None,
) -> Callable[[Any, ServerStream, StreamServerInfo, Callable[[Any, ServerStream], None]], None]:
    """Return a streaming server interceptor that recovers from panics."""
    recover = _resolve_handler(recovery_handler, recovery_handler_context)

    def interceptor(
        srv: Any,
        stream: ServerStream,
        info: StreamServerInfo,
        handler: Callable[[Any, ServerStream], None],
    ) -> None:
        try:
            handler(srv, stream)
        except StatusError:
            raise
        except Exception as panic:
            err = _recover_from(stream.context(), panic, recover)
            if err is None:
                return
            raise err from panic

    return interceptor