"""Copying trace identifiers of a span into request tags.

The public tracing interface gives no access to the trace and span ids of a
span context; only a tracer's ``inject`` knows them. So the span is injected
into a carrier that recognises the usual header names:

* keys containing ``traceid`` and ``spanid`` (most tracers);
* a single Jaeger-style header ``{trace-id}:{span-id}:{parent-span-id}:{flags}``;
* keys ending in ``trace-id`` and ``parent-id`` (Datadog style).
"""

from __future__ import annotations

import logging
from typing import Any

from .tags import Tags

TAG_TRACE_ID = "trace.traceid"
TAG_SPAN_ID = "trace.spanid"
TAG_SAMPLED = "trace.sampled"
JAEGER_NOT_SAMPLED_FLAG = "0"

_log = logging.getLogger(__name__)


class TagsCarrier:
    """A text map carrier that writes recognised trace identifiers into tags."""

    def __init__(self, tags: Tags, trace_header_name: str) -> None:
        self.tags = tags
        self.trace_header_name = trace_header_name

    def set(self, key: str, value: str) -> None:
        """Record ``value`` in the tags if ``key`` names a trace id, span id or sampling flag."""
        key = key.lower()

        if key == self.trace_header_name:
            parts = value.split(":")
            if len(parts) == 4:
                self.tags.set(TAG_TRACE_ID, parts[0])
                self.tags.set(TAG_SPAN_ID, parts[1])
                sampled = parts[3] != JAEGER_NOT_SAMPLED_FLAG
                self.tags.set(TAG_SAMPLED, "true" if sampled else "false")
                return

        if "traceid" in key:
            self.tags.set(TAG_TRACE_ID, value)
        if "spanid" in key and "parent" not in key:
            self.tags.set(TAG_SPAN_ID, value)
        if "sampled" in key and value in ("true", "false"):
            self.tags.set(TAG_SAMPLED, value)
        if key.endswith("trace-id"):
            self.tags.set(TAG_TRACE_ID, value)
        if key.endswith("parent-id"):
            self.tags.set(TAG_SPAN_ID, value)


def inject_ids_to_tags(trace_header_name: str, span: Any, tags: Tags) -> None:
    """Write the trace identifiers of ``span`` into ``tags``; failures are only logged."""
    try:
        span.tracer().inject(span.context(), TagsCarrier(tags, trace_header_name))
    except Exception as err:
        _log.info("tracing: failed extracting trace info into tags: %s", err)