"""Client and server interceptors for distributed tracing.

The interceptors are tracer-agnostic: any ``Tracer`` implementation can be
plugged in. A service that both receives and sends requests needs both sides,
otherwise downstream requests do not carry the trace.

Every server-side span is tagged with the request tags of the ``tags``
middleware.
"""

from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from . import tags as ctxtags
from .context import Context
from .metautils import extract_incoming, extract_outgoing
from .stream import ClientStream, EndOfStream, ServerStream, StreamDesc, StreamServerInfo, UnaryServerInfo, wrap_server_stream
from .tracing_ids import inject_ids_to_tags
from .tracing_metadata import MetadataTextMap

DEFAULT_TRACE_HEADER_NAME = "uber-trace-id"

_SPAN_KEY = object()
_CLIENT_TAGS_KEY = object()
_COMPONENT_TAGS = {"component": "gRPC"}

_log = logging.getLogger(__name__)

FilterFunc = Callable[[Context, str], bool]
UnaryRequestHandler = Callable[["Span", Any], None]
OpNameFunc = Callable[[str], str]


class SpanContextNotFound(Exception):
    """A carrier holds no span context."""


class Span(abc.ABC):
    """A span of a trace."""

    @abc.abstractmethod
    def context(self) -> Any:
        """Return the span context that identifies this span."""

    @abc.abstractmethod
    def tracer(self) -> Tracer:
        """Return the tracer that started this span."""

    @abc.abstractmethod
    def set_tag(self, key: str, value: Any) -> Span:
        """Set a tag on the span."""

    @abc.abstractmethod
    def log_kv(self, key_values: dict[str, Any]) -> Span:
        """Record a log entry of key and value pairs."""

    @abc.abstractmethod
    def finish(self) -> None:
        """End the span."""


class Tracer(abc.ABC):
    """Starts spans and moves span contexts in and out of carriers."""

    @abc.abstractmethod
    def start_span(
        self, operation_name: str, child_of: Any = None, tags: dict[str, Any] | None = None
    ) -> Span:
        """Start a span, a child of the span context ``child_of`` when given."""

    @abc.abstractmethod
    def inject(self, span_context: Any, carrier: Any) -> None:
        """Write ``span_context`` into a carrier with a ``set(key, value)`` method."""

    @abc.abstractmethod
    def extract(self, carrier: Any) -> Any:
        """Read a span context from a carrier with an ``items()`` method.

        Raises SpanContextNotFound when the carrier holds none.
        """


@dataclass(frozen=True)
class _NoopSpanContext:
    operation_name: str


class NoopSpan(Span):
    """A span that reports to nowhere; it only keeps what it is given in memory."""

    def __init__(self, tracer: Tracer, operation_name: str = "") -> None:
        self._tracer = tracer
        self._context = _NoopSpanContext(operation_name)
        self.operation_name = operation_name
        self.tags: dict[str, Any] = {}
        self.logs: list[dict[str, Any]] = []
        self.finished = False

    def context(self) -> Any:
        return self._context

    def tracer(self) -> Tracer:
        return self._tracer

    def set_tag(self, key: str, value: Any) -> Span:
        self.tags[key] = value
        return self

    def log_kv(self, key_values: dict[str, Any]) -> Span:
        self.logs.append(dict(key_values))
        return self

    def finish(self) -> None:
        self.finished = True


class NoopTracer(Tracer):
    """A tracer whose spans report nothing and that propagates nothing."""

    def start_span(
        self, operation_name: str, child_of: Any = None, tags: dict[str, Any] | None = None
    ) -> Span:
        span = NoopSpan(self, operation_name)
        for key, value in (tags or {}).items():
            span.set_tag(key, value)
        return span

    def inject(self, span_context: Any, carrier: Any) -> None:
        if not callable(getattr(carrier, "set", None)):
            raise TypeError("carrier must provide set(key, value)")

    def extract(self, carrier: Any) -> Any:
        if not callable(getattr(carrier, "items", None)):
            raise TypeError("carrier must provide items()")
        raise SpanContextNotFound("span context not found in carrier")


_registry: dict[str, Tracer] = {"tracer": NoopTracer()}


def global_tracer() -> Tracer:
    """Return the tracer used when an interceptor is given none."""
    return _registry["tracer"]


def set_global_tracer(tracer: Tracer) -> None:
    """Replace the tracer used when an interceptor is given none."""
    if not isinstance(tracer, Tracer):
        raise TypeError(f"expected a Tracer, got {type(tracer).__name__}")
    _registry["tracer"] = tracer


def span_from_context(ctx: Context) -> Span | None:
    """Return the span stored in ``ctx``, or None."""
    return ctx.value(_SPAN_KEY)


def context_with_span(ctx: Context, span: Span) -> Context:
    """Return a context carrying ``span``."""
    return ctx.with_value(_SPAN_KEY, span)


def client_add_context_tags(ctx: Context, tags: dict[str, Any]) -> Context:
    """Return a context whose ``tags`` are added to client spans started from it."""
    return ctx.with_value(_CLIENT_TAGS_KEY, dict(tags))


@dataclass(frozen=True)
class _Options:
    tracer: Tracer
    filter_func: FilterFunc | None
    trace_header_name: str
    unary_request_handler: UnaryRequestHandler | None
    op_name_func: OpNameFunc | None

    def skips(self, ctx: Context, method: str) -> bool:
        return self.filter_func is not None and not self.filter_func(ctx, method)

    def op_name(self, method: str) -> str:
        return self.op_name_func(method) if self.op_name_func is not None else method


def _evaluate_options(
    tracer: Tracer | None,
    filter_func: FilterFunc | None,
    trace_header_name: str,
    unary_request_handler: UnaryRequestHandler | None,
    op_name_func: OpNameFunc | None,
) -> _Options:
    return _Options(
        tracer=tracer if tracer is not None else global_tracer(),
        filter_func=filter_func,
        trace_header_name=trace_header_name or DEFAULT_TRACE_HEADER_NAME,
        unary_request_handler=unary_request_handler,
        op_name_func=op_name_func,
    )


def _new_client_span(ctx: Context, tracer: Tracer, method: str) -> tuple[Context, Span]:
    parent = span_from_context(ctx)
    parent_context = parent.context() if parent is not None else None
    span_tags: dict[str, Any] = {"span.kind": "client", **_COMPONENT_TAGS}
    extra = ctx.value(_CLIENT_TAGS_KEY)
    if isinstance(extra, dict):
        span_tags.update(extra)
    span = tracer.start_span(method, child_of=parent_context, tags=span_tags)
    md = extract_outgoing(ctx).clone()
    try:
        tracer.inject(span.context(), MetadataTextMap(md))
    except Exception as err:
        _log.info("tracing: failed serializing trace information: %s", err)
    return context_with_span(md.to_outgoing(ctx), span), span


def _finish_client_span(span: Span, err: BaseException | None) -> None:
    if err is not None and not isinstance(err, EndOfStream):
        span.set_tag("error", True)
        span.log_kv({"event": "error", "message": str(err)})
    span.finish()


def _new_server_span(
    ctx: Context, tracer: Tracer, trace_header_name: str, op_name: str
) -> tuple[Context, Span]:
    parent_context = None
    try:
        parent_context = tracer.extract(MetadataTextMap(extract_incoming(ctx)))
    except SpanContextNotFound:
        pass
    except Exception as err:
        _log.info("tracing: failed parsing trace information: %s", err)
    span = tracer.start_span(
        op_name, child_of=parent_context, tags={"span.kind": "server", **_COMPONENT_TAGS}
    )
    inject_ids_to_tags(trace_header_name, span, ctxtags.extract(ctx))
    return context_with_span(ctx, span), span


def _finish_server_span(ctx: Context, span: Span, err: BaseException | None) -> None:
    for key, value in (ctxtags.extract(ctx).values() or {}).items():
        # Errors are logged rather than tagged.
        if isinstance(value, BaseException):
            span.log_kv({key: str(value)})
        else:
            span.set_tag(key, value)
    if err is not None:
        span.set_tag("error", True)
        span.log_kv({"event": "error", "message": str(err)})
    span.finish()


class TracedClientStream(ClientStream):
    """A client stream that finishes its span once, when the stream ends or fails."""

    def __init__(self, stream: ClientStream, client_span: Span) -> None:
        self._stream = stream
        self._span = client_span
        self._lock = threading.Lock()
        self._finished = False

    def _finish(self, err: BaseException | None) -> None:
        with self._lock:
            if self._finished:
                return
            self._finished = True
        _finish_client_span(self._span, err)

    def context(self) -> Context:
        return self._stream.context()

    def header(self) -> dict[str, list[str]]:
        try:
            return self._stream.header()
        except Exception as err:
            self._finish(err)
            raise

    def trailer(self) -> dict[str, list[str]]:
        return self._stream.trailer()

    def send_msg(self, message: Any) -> None:
        try:
            self._stream.send_msg(message)
        except Exception as err:
            self._finish(err)
            raise

    def close_send(self) -> None:
        try:
            self._stream.close_send()
        except Exception as err:
            self._finish(err)
            raise
        self._finish(None)

    def recv_msg(self) -> Any:
        try:
            return self._stream.recv_msg()
        except Exception as err:
            self._finish(err)
            raise


def unary_client_interceptor(
    *,
    tracer: Tracer | None = None,
    filter_func: FilterFunc | None = None,
    trace_header_name: str = "",
    unary_request_handler: UnaryRequestHandler | None = None,
    op_name_func: OpNameFunc | None = None,
) -> Callable[..., Any]:
    """Return a unary client interceptor that traces calls and propagates the trace."""
    options = _evaluate_options(
        tracer, filter_func, trace_header_name, unary_request_handler, op_name_func
    )

    def interceptor(
        parent_ctx: Context,
        method: str,
        req: Any,
        reply: Any,
        cc: Any,
        invoker: Callable[..., Any],
        *opts: Any,
    ) -> Any:
        if options.skips(parent_ctx, method):
            return invoker(parent_ctx, method, req, reply, cc, *opts)
        new_ctx, span = _new_client_span(parent_ctx, options.tracer, method)
        if options.unary_request_handler is not None:
            options.unary_request_handler(span, req)
        try:
            result = invoker(new_ctx, method, req, reply, cc, *opts)
        except Exception as err:
            _finish_client_span(span, err)
            raise
        _finish_client_span(span, None)
        return result

    return interceptor


def stream_client_interceptor(
    *,
    tracer: Tracer | None = None,
    filter_func: FilterFunc | None = None,
    trace_header_name: str = "",
    unary_request_handler: UnaryRequestHandler | None = None,
    op_name_func: OpNameFunc | None = None,
) -> Callable[..., ClientStream]:
    """Return a stream client interceptor that traces calls and propagates the trace."""
    options = _evaluate_options(
        tracer, filter_func, trace_header_name, unary_request_handler, op_name_func
    )

    def interceptor(
        parent_ctx: Context,
        desc: StreamDesc,
        cc: Any,
        method: str,
        streamer: Callable[..., ClientStream],
        *opts: Any,
    ) -> ClientStream:
        if options.skips(parent_ctx, method):
            return streamer(parent_ctx, desc, cc, method, *opts)
        new_ctx, span = _new_client_span(parent_ctx, options.tracer, method)
        try:
            stream = streamer(new_ctx, desc, cc, method, *opts)
        except Exception as err:
            _finish_client_span(span, err)
            raise
        return TracedClientStream(stream, span)

    return interceptor


def unary_server_interceptor(
    *,
    tracer: Tracer | None = None,
    filter_func: FilterFunc | None = None,
    trace_header_name: str = "",
    unary_request_handler: UnaryRequestHandler | None = None,
    op_name_func: OpNameFunc | None = None,
) -> Callable[[Context, Any, UnaryServerInfo, Callable[[Context, Any], Any]], Any]:
    """Return a unary server interceptor that continues the caller's trace."""
    options = _evaluate_options(
        tracer, filter_func, trace_header_name, unary_request_handler, op_name_func
    )

    def interceptor(
        ctx: Context, req: Any, info: UnaryServerInfo, handler: Callable[[Context, Any], Any]
    ) -> Any:
        if options.skips(ctx, info.full_method):
            return handler(ctx, req)
        new_ctx, span = _new_server_span(
            ctx, options.tracer, options.trace_header_name, options.op_name(info.full_method)
        )
        if options.unary_request_handler is not None:
            options.unary_request_handler(span, req)
        try:
            response = handler(new_ctx, req)
        except Exception as err:
            _finish_server_span(ctx, span, err)
            raise
        _finish_server_span(ctx, span, None)
        return response

    return interceptor


def stream_server_interceptor(
    *,
    tracer: Tracer | None = None,
    filter_func: FilterFunc | None = None,
    trace_header_name: str = "",
    unary_request_handler: UnaryRequestHandler | None = None,
    op_name_func: OpNameFunc | None = None,
) -> Callable[[Any, ServerStream, StreamServerInfo, Callable[[Any, ServerStream], Any]], Any]:
    """Return a streaming server interceptor that continues the caller's trace."""
    options = _evaluate_options(
        tracer, filter_func, trace_header_name, unary_request_handler, op_name_func
    )

    def interceptor(
        srv: Any,
        stream: ServerStream,
        info: StreamServerInfo,
        handler: Callable[[Any, ServerStream], Any],
    ) -> Any:
        if options.skips(stream.context(), info.full_method):
            return handler(srv, stream)
        new_ctx, span = _new_server_span(
            stream.context(),
            options.tracer,
            options.trace_header_name,
            options.op_name(info.full_method),
        )
        wrapped = wrap_server_stream(stream)
        wrapped.wrapped_context = new_ctx
        try:
            result = handler(srv, wrapped)
        except Exception as err:
            _finish_server_span(new_ctx, span, err)
            raise
        _finish_server_span(new_ctx, span, None)
        return result

    return interceptor