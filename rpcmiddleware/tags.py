"""Request tags stored in the context for use by other middleware and handlers.

Tags describe information about a request. They can be set and read by other
middleware or by handlers, and are used for logging and tracing. Tags are
populated both upwards and downwards in the interceptor-handler stack.

Request fields can be extracted automatically into ``grpc.request.<field>``
tags. For unary and server-streaming methods pass ``field_extractor``. For
client-streams and bidirectional streams, ``field_extractor_for_initial_req``
extracts the tags from the first message the client sends; later messages do
not change them.

Without the interceptors that create the ``Tags`` object, everything that
follows from ``extract(ctx)`` is a no-op, so code never fails when the
interceptors are not used.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .context import Context, peer_address
from .stream import ServerStream, StreamServerInfo, UnaryServerInfo, WrappedServerStream, wrap_server_stream

RequestFieldExtractor = Callable[[str, Any], Optional[Dict[str, Any]]]

_TAGS_KEY = object()


class Tags:
    """Tags of a request. Not thread safe: use within the request only."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> Tags:
        """Set ``key`` to ``value`` and return the tags."""
        self._values[key] = value
        return self

    def has(self, key: str) -> bool:
        """Return whether ``key`` is set."""
        return key in self._values

    def values(self) -> dict[str, Any]:
        """Return the mapping of keys to values; change it only through ``set``."""
        return self._values


class NoopTags(Tags):
    """Tags for which every operation does nothing."""

    def set(self, key: str, value: Any) -> Tags:
        return self

    def has(self, key: str) -> bool:
        return False

    def values(self) -> dict[str, Any]:
        return {}


NOOP_TAGS = NoopTags()


def extract(ctx: Context) -> Tags:
    """Return the tags stored in ``ctx``, or no-op tags that are not propagated."""
    tags = ctx.value(_TAGS_KEY)
    if isinstance(tags, Tags):
        return tags
    return NOOP_TAGS


def set_in_context(ctx: Context, tags: Tags) -> Context:
    """Return a context carrying ``tags``."""
    return ctx.with_value(_TAGS_KEY, tags)


def new_tags() -> Tags:
    """Return a new, empty set of tags."""
    return Tags()


@dataclass(frozen=True)
class _Options:
    request_fields_func: RequestFieldExtractor | None
    request_fields_from_initial: bool


def _evaluate_options(
    field_extractor: RequestFieldExtractor | None,
    field_extractor_for_initial_req: RequestFieldExtractor | None,
) -> _Options:
    if field_extractor is not None and field_extractor_for_initial_req is not None:
        raise ValueError("give either field_extractor or field_extractor_for_initial_req, not both")
    if field_extractor_for_initial_req is not None:
        return _Options(field_extractor_for_initial_req, True)
    return _Options(field_extractor, False)


def _new_tags_for_ctx(ctx: Context) -> Context:
    tags = new_tags()
    address = peer_address(ctx)
    if address is not None:
        tags.set("peer.address", address)
    return set_in_context(ctx, tags)


def _set_request_field_tags(
    ctx: Context, extractor: RequestFieldExtractor, full_method: str, req: Any
) -> None:
    fields = extractor(full_method, req)
    if fields:
        tags = extract(ctx)
        for key, value in fields.items():
            tags.set("grpc.request." + key, value)


class _TaggingServerStream(WrappedServerStream):
    """Server stream that extracts request field tags from received messages."""

    def __init__(
        self, stream: ServerStream, info: StreamServerInfo, options: _Options, ctx: Context
    ) -> None:
        super().__init__(stream, ctx)
        self._info = info
        self._options = options
        self._initial = True

    def recv_msg(self) -> Any:
        message = self.stream.recv_msg()
        if not self._info.is_client_stream or (
            self._options.request_fields_from_initial and self._initial
        ):
            self._initial = False
            extractor = self._options.request_fields_func
            if extractor is not None:
                _set_request_field_tags(self.context(), extractor, self._info.full_method, message)
        return message


def unary_server_interceptor(
    *,
    field_extractor: RequestFieldExtractor | None = None,
    field_extractor_for_initial_req: RequestFieldExtractor | None = None,
) -> Callable[[Context, Any, UnaryServerInfo, Callable[[Context, Any], Any]], Any]:
    """Return a unary server interceptor that sets up request tags."""
    options = _evaluate_options(field_extractor, field_extractor_for_initial_req)

    def interceptor(
        ctx: Context, req: Any, info: UnaryServerInfo, handler: Callable[[Context, Any], Any]
    ) -> Any:
        new_ctx = _new_tags_for_ctx(ctx)
        if options.request_fields_func is not None:
            _set_request_field_tags(new_ctx, options.request_fields_func, info.full_method, req)
        return handler(new_ctx, req)

    return interceptor


def stream_server_interceptor(
    *,
    field_extractor: RequestFieldExtractor | None = None,
    field_extractor_for_initial_req: RequestFieldExtractor | None = None,
) -> Callable[[Any, ServerStream, StreamServerInfo, Callable[[Any, ServerStream], Any]], Any]:
    """Return a streaming server interceptor that sets up request tags."""
    options = _evaluate_options(field_extractor, field_extractor_for_initial_req)

    def interceptor(
        srv: Any,
        stream: ServerStream,
        info: StreamServerInfo,
        handler: Callable[[Any, ServerStream], Any],
    ) -> Any:
        new_ctx = _new_tags_for_ctx(stream.context())
        if options.request_fields_func is None:
            wrapped = wrap_server_stream(stream)
            wrapped.wrapped_context = new_ctx
            return handler(srv, wrapped)
        return handler(srv, _TaggingServerStream(stream, info, options, new_ctx))

    return interceptor