"""Client interceptors that retry failed calls based on their status code.

Unary calls and server-streaming calls are supported. Retrying is disabled by
default; see ``retry_options`` for how to enable and tune it. In a chain of
interceptors, every interceptor that follows the retry interceptor is called
again on each retry.

Streams are retried only when the client does not stream: the messages the
client sent are buffered and sent again on a new stream.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from .context import Context
from .metautils import extract_outgoing
from .retry_options import DEFAULT_OPTIONS, CallOption, RetryOptions, filter_call_options
from .status import Code, StatusError, code_of, from_context_error
from .stream import ClientStream, EndOfStream, StreamDesc

ATTEMPT_METADATA_KEY = "x-retry-attempty"

_log = logging.getLogger(__name__)


def _is_context_error(err: BaseException) -> bool:
    return code_of(err) in (Code.DEADLINE_EXCEEDED, Code.CANCELED)


def _is_retriable(err: BaseException, options: RetryOptions) -> bool:
    if _is_context_error(err):
        return False
    return code_of(err) in options.codes


def _should_retry(parent_ctx: Context, options: RetryOptions, err: BaseException) -> bool:
    if _is_context_error(err):
        if parent_ctx.err() is not None:
            _log.debug("retry: parent context error: %s", parent_ctx.err())
            return False
        if options.per_call_timeout:
            _log.debug("retry: context error from a single attempt")
            return True
    return _is_retriable(err, options)


def _wait_retry_backoff(attempt: int, parent_ctx: Context, options: RetryOptions) -> None:
    wait_time = options.backoff_func(parent_ctx, attempt) if attempt > 0 else 0.0
    if wait_time > 0:
        _log.debug("retry attempt: %d, backoff for %.3fs", attempt, wait_time)
        if parent_ctx.wait(wait_time):
            raise from_context_error(parent_ctx.err())


def _per_call_context(
    parent_ctx: Context, options: RetryOptions, attempt: int
) -> tuple[Context, Callable[[], None] | None]:
    """Return the context of one attempt and, when it has its own timeout, its cancel."""
    ctx: Context = parent_ctx
    cancel: Callable[[], None] | None = None
    if options.per_call_timeout:
        ctx, cancel = ctx.with_timeout(options.per_call_timeout)
    if attempt > 0 and options.include_header:
        md = extract_outgoing(ctx).clone().set(ATTEMPT_METADATA_KEY, str(attempt))
        ctx = md.to_outgoing(ctx)
    return ctx, cancel


def unary_client_interceptor(*call_options: CallOption) -> Callable[..., Any]:
    """Return a unary client interceptor that retries failed calls.

    Options given here apply to every call; options passed with a call override them.
    """
    interceptor_options = DEFAULT_OPTIONS.with_call_options(call_options)

    def interceptor(
        parent_ctx: Context,
        method: str,
        req: Any,
        reply: Any,
        cc: Any,
        invoker: Callable[..., Any],
        *opts: Any,
    ) -> Any:
        transport_opts, retry_opts = filter_call_options(opts)
        options = interceptor_options.with_call_options(retry_opts)
        if options.max_retries == 0:
            return invoker(parent_ctx, method, req, reply, cc, *transport_opts)
        last_err: BaseException | None = None
        for attempt in range(options.max_retries):
            _wait_retry_backoff(attempt, parent_ctx, options)
            call_ctx, cancel = _per_call_context(parent_ctx, options, attempt)
            try:
                return invoker(call_ctx, method, req, reply, cc, *transport_opts)
            except Exception as err:
                last_err = err
            finally:
                if cancel is not None:
                    cancel()
            _log.debug("retry attempt: %d, got err: %s", attempt, last_err)
            if not _should_retry(parent_ctx, options, last_err):
                raise last_err
        raise last_err  # type: ignore[misc]

    return interceptor


class ServerStreamingRetryingStream(ClientStream):
    """A client stream that re-establishes the call when receiving fails retriably."""

    def __init__(
        self,
        stream: ClientStream,
        call_options: RetryOptions,
        parent_ctx: Context,
        streamer_call: Callable[[Context], ClientStream],
    ) -> None:
        self._stream = stream
        self._options = call_options
        self._parent_ctx = parent_ctx
        self._streamer_call = streamer_call
        self._buffered_sends: list[Any] = []
        self._was_closed_send = False
        self._lock = threading.Lock()

    def _get_stream(self) -> ClientStream:
        with self._lock:
            return self._stream

    def _set_stream(self, stream: ClientStream) -> None:
        with self._lock:
            self._stream = stream

    def context(self) -> Context:
        return self._get_stream().context()

    def send_msg(self, message: Any) -> None:
        with self._lock:
            self._buffered_sends.append(message)
        self._get_stream().send_msg(message)

    def close_send(self) -> None:
        with self._lock:
            self._was_closed_send = True
        self._get_stream().close_send()

    def header(self) -> dict[str, list[str]]:
        return self._get_stream().header()

    def trailer(self) -> dict[str, list[str]]:
        return self._get_stream().trailer()

    def recv_msg(self) -> Any:
        retry, message, last_err = self._receive()
        if not retry:
            return self._outcome(message, last_err)
        # Attempt 0 was the stream the call started with.
        for attempt in range(1, self._options.max_retries):
            _wait_retry_backoff(attempt, self._parent_ctx, self._options)
            call_ctx, _ = _per_call_context(self._parent_ctx, self._options, attempt)
            try:
                new_stream = self._reestablish(call_ctx)
            except Exception as err:
                if _is_retriable(err, self._options):
                    continue
                raise
            self._set_stream(new_stream)
            retry, message, last_err = self._receive()
            if not retry:
                return self._outcome(message, last_err)
        raise last_err  # type: ignore[misc]

    @staticmethod
    def _outcome(message: Any, err: BaseException | None) -> Any:
        if err is not None:
            raise err
        return message

    def _receive(self) -> tuple[bool, Any, BaseException | None]:
        try:
            return False, self._get_stream().recv_msg(), None
        except EndOfStream as end:
            return False, None, end
        except Exception as err:
            return _should_retry(self._parent_ctx, self._options, err), None, err

    def _reestablish(self, call_ctx: Context) -> ClientStream:
        with self._lock:
            buffered = list(self._buffered_sends)
        try:
            new_stream = self._streamer_call(call_ctx)
        except Exception as err:
            _log.debug("retry: failed redialing new stream: %s", err)
            raise
        for message in buffered:
            new_stream.send_msg(message)
        new_stream.close_send()
        return new_stream


def stream_client_interceptor(*call_options: CallOption) -> Callable[..., ClientStream]:
    """Return a stream client interceptor that retries server-streaming calls.

    Retrying a call on which the client streams fails with UNIMPLEMENTED.
    """
    interceptor_options = DEFAULT_OPTIONS.with_call_options(call_options)

    def interceptor(
        parent_ctx: Context,
        desc: StreamDesc,
        cc: Any,
        method: str,
        streamer: Callable[..., ClientStream],
        *opts: Any,
    ) -> ClientStream:
        transport_opts, retry_opts = filter_call_options(opts)
        options = interceptor_options.with_call_options(retry_opts)
        if options.max_retries == 0:
            return streamer(parent_ctx, desc, cc, method, *transport_opts)
        if desc.client_streams:
            raise StatusError(
                Code.UNIMPLEMENTED, "retry: cannot retry on client streams, use disable()"
            )

        def streamer_call(ctx: Context) -> ClientStream:
            return streamer(ctx, desc, cc, method, *transport_opts)

        last_err: BaseException | None = None
        for attempt in range(options.max_retries):
            _wait_retry_backoff(attempt, parent_ctx, options)
            call_ctx, _ = _per_call_context(parent_ctx, options, 0)
            try:
                stream = streamer_call(call_ctx)
            except Exception as err:
                last_err = err
            else:
                return ServerStreamingRetryingStream(stream, options, parent_ctx, streamer_call)
            _log.debug("retry attempt: %d, got err: %s", attempt, last_err)
            if not _should_retry(parent_ctx, options, last_err):
                raise last_err
        raise last_err  # type: ignore[misc]

    return interceptor