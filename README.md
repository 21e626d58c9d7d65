# rpcmiddleware

Composable interceptors for RPC servers and clients. Each interceptor is a plain
callable that wraps a handler, an invoker, a streamer or a stream, so it can sit
in any chain of interceptors you build.

Server interceptors are called as `interceptor(ctx, req, info, handler)` (unary)
or `interceptor(srv, stream, info, handler)` (streaming). Client interceptors are
called as `interceptor(ctx, method, req, reply, cc, invoker, *opts)` (unary) or
`interceptor(ctx, desc, cc, method, streamer, *opts)` (streaming).

## Modules

- **context**: `Context`, an immutable chain of values with optional deadline
  and cancellation (`with_value`, `with_cancel`, `with_timeout`, `err`, `done`,
  `wait`), `background()`, and `with_peer` / `peer_address` for the remote
  address. Context errors are `Canceled` and `DeadlineExceeded`.
- **status**: the `Code` enum, `StatusError(code, message)`, `code_of(err)` and
  `from_context_error(err)`.
- **stream**: the abstract `ServerStream` and `ClientStream`, `EndOfStream`
  (raised by `recv_msg` when no messages are left), the `UnaryServerInfo`,
  `StreamServerInfo` and `StreamDesc` records, and `wrap_server_stream`, whose
  `WrappedServerStream` lets you replace the stream's context by assigning
  `wrapped_context`.
- **recovery**: server interceptors that turn any exception other than
  `StatusError` raised by a handler into `StatusError(Code.INTERNAL, str(exc))`,
  or hand it to your `recovery_handler(exc)` or
  `recovery_handler_context(ctx, exc)`. If your function returns `None`, the call
  ends without an error.
- **retry** and **retry_options**: client-side retries for unary and
  server-streaming calls. Retrying is off until `with_max(n)` is set, either on
  the interceptor or passed with a single call. Defaults retry on
  `RESOURCE_EXHAUSTED` and `UNAVAILABLE` with a 50 ms linear backoff and 10%
  jitter. Options: `with_max`, `disable`, `with_codes`, `with_backoff`,
  `with_backoff_context`, `with_per_retry_timeout`. Backoffs: `backoff_linear`,
  `backoff_linear_with_jitter`, `backoff_exponential`,
  `backoff_exponential_with_jitter`. Each retry sends an `x-retry-attempty`
  outgoing metadata header. Streams on which the client streams fail with
  `UNIMPLEMENTED` when retrying is enabled. Durations are in seconds.
- **backoffutils**: `jitter_up(duration, jitter)` and `exponent_base2(a)`.
- **tags**: a per-request `Tags` store placed in the context by the tags server
  interceptors, holding `peer.address` and `grpc.request.<field>` entries pulled
  from requests by a `field_extractor` (or `field_extractor_for_initial_req` for
  the first message of a client stream). `extract(ctx)` returns `NoopTags` when
  no interceptor set them up.
- **fieldextractor**: `code_gen_request_field_extractor`, which calls a
  request's `extract_request_fields(mapping)` method, and
  `tag_based_request_field_extractor(tag_name)`, which reads dataclass field
  metadata (`field(metadata={"log_field": "meta_tags"})`), nested dataclasses
  included.
- **validator**: calls a message's `validate()` (or `validate(False)` when it
  takes an argument) and turns any exception into `Code.INVALID_ARGUMENT`;
  unary server and client interceptors, and a stream server interceptor that
  checks each received message.
- **tracing**, **tracing_ids** and **tracing_metadata**: client and server
  interceptors that start spans through a pluggable `Tracer`, propagate them in
  call metadata via `MetadataTextMap`, copy trace id, span id and sampling flag
  into request tags (`TagsCarrier`, `inject_ids_to_tags`), tag server spans with
  the request tags and mark failed spans with `error`. Options: `tracer`,
  `filter_func`, `trace_header_name` (default `uber-trace-id`),
  `unary_request_handler`, `op_name_func`. `client_add_context_tags(ctx, tags)`
  adds tags to client spans started from that context.
- **metautils**: `NiceMD`, a multi-valued metadata map with lower-cased keys
  (`get`, `set`, `add`, `delete`, `clone`) that can be placed in a context with
  `to_outgoing` / `to_incoming` and read back with `extract_outgoing` /
  `extract_incoming`; `pairs(*args)` builds one from alternating keys and values.

## Install

```
pip install rpcmiddleware
```

## Examples

Recovering from a failing handler:

```python
from rpcmiddleware import recovery
from rpcmiddleware.context import background
from rpcmiddleware.status import Code, StatusError
from rpcmiddleware.stream import UnaryServerInfo

interceptor = recovery.unary_server_interceptor(
    recovery_handler=lambda p: StatusError(Code.UNKNOWN, f"panic triggered: {p}"),
)

def handler(ctx, req):
    raise RuntimeError("very bad thing happened")

try:
    interceptor(background(), "ping", UnaryServerInfo("/svc/Ping"), handler)
except StatusError as err:
    print(err.code, err.message)  # Unknown panic triggered: very bad thing happened
```

Retrying a unary call on chosen codes:

```python
from rpcmiddleware import retry
from rpcmiddleware.retry_options import backoff_linear, with_backoff, with_codes, with_max
from rpcmiddleware.status import Code

interceptor = retry.unary_client_interceptor(
    with_max(3),
    with_codes(Code.UNAVAILABLE, Code.DATA_LOSS),
    with_backoff(backoff_linear(0.05)),
)
```

Options given to the interceptor are its defaults; the same options passed with
a single call (among `*opts`) override them for that call and are not passed on
to the invoker.

Working with metadata:

```python
from rpcmiddleware.context import background
from rpcmiddleware.metautils import extract_outgoing, pairs

ctx = pairs("x-client", "1").to_outgoing(background())
md = extract_outgoing(ctx).clone().set("x-another", "2")
```

## What the package does not do

There is no network transport, RPC server, client channel or message encoding
here: you supply the handlers, invokers, streamers and stream objects, and the
interceptors wrap them. Nothing chains interceptors for you. The only tracer
provided is `NoopTracer`, which records spans in memory and propagates nothing;
to export traces, implement `Tracer` and `Span` and install it with
`set_global_tracer` or pass it as `tracer=`.

## Tests

```
pip install -e .[test]
pytest
```