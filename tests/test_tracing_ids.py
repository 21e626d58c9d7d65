from rpcmiddleware.tags import new_tags
from rpcmiddleware.tracing_ids import (
    TAG_SAMPLED,
    TAG_SPAN_ID,
    TAG_TRACE_ID,
    TagsCarrier,
    inject_ids_to_tags,
)

TRACE_HEADER_NAME = "uber-trace-id"


def make_carrier():
    return TagsCarrier(new_tags(), TRACE_HEADER_NAME)


def test_jaeger_trace_format():
    carrier = make_carrier()
    carrier.set(TRACE_HEADER_NAME, "deadbeef:c0decafe:c0decafe:1")
    assert carrier.tags.values() == {
        TAG_TRACE_ID: "deadbeef",
        TAG_SPAN_ID: "c0decafe",
        TAG_SAMPLED: "true",
    }


def test_jaeger_not_sampled():
    carrier = make_carrier()
    carrier.set("Uber-Trace-Id", "deadbeef:c0decafe:c0decafe:0")
    assert carrier.tags.values()[TAG_SAMPLED] == "false"


def test_header_with_wrong_part_count_falls_back_to_suffix():
    carrier = make_carrier()
    carrier.set(TRACE_HEADER_NAME, "deadbeef")
    assert carrier.tags.values() == {TAG_TRACE_ID: "deadbeef"}


def test_generic_keys():
    carrier = make_carrier()
    carrier.set("mockpfx-ids-traceid", "1337")
    carrier.set("mockpfx-ids-spanid", "999")
    carrier.set("mockpfx-ids-sampled", "true")
    assert carrier.tags.values() == {
        TAG_TRACE_ID: "1337",
        TAG_SPAN_ID: "999",
        TAG_SAMPLED: "true",
    }


def test_parent_span_id_is_ignored():
    carrier = make_carrier()
    carrier.set("X-B3-ParentSpanId", "999")
    assert not carrier.tags.has(TAG_SPAN_ID)


def test_sampled_requires_boolean_text():
    carrier = make_carrier()
    carrier.set("x-sampled", "1")
    assert not carrier.tags.has(TAG_SAMPLED)


def test_datadog_style_keys():
    carrier = make_carrier()
    carrier.set("x-datadog-trace-id", "1337")
    carrier.set("x-datadog-parent-id", "999")
    assert carrier.tags.values() == {TAG_TRACE_ID: "1337", TAG_SPAN_ID: "999"}


class _Tracer:
    def __init__(self, fail=False):
        self.fail = fail

    def inject(self, span_context, carrier):
        if self.fail:
            raise RuntimeError("cannot inject")
        carrier.set("mockpfx-ids-traceid", str(span_context[0]))
        carrier.set("mockpfx-ids-spanid", str(span_context[1]))


class _Span:
    def __init__(self, tracer):
        self._tracer = tracer

    def tracer(self):
        return self._tracer

    def context(self):
        return (1337, 999)


def test_inject_ids_to_tags():
    tags = new_tags()
    inject_ids_to_tags(TRACE_HEADER_NAME, _Span(_Tracer()), tags)
    assert tags.values() == {TAG_TRACE_ID: "1337", TAG_SPAN_ID: "999"}


def test_inject_failure_leaves_tags_empty():
    tags = new_tags()
    inject_ids_to_tags(TRACE_HEADER_NAME, _Span(_Tracer(fail=True)), tags)
    assert tags.values() == {}