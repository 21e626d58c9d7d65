"""Convenience wrapper around call metadata held in contexts.

``NiceMD`` maps lower-case keys to lists of values. For example, incoming
metadata can be copied into a new outgoing client context::

    nmd = extract_incoming(server_ctx).clone(":authorization", ":custom")
    client_ctx = nmd.set("x-client-header", "2").set("x-another", "3").to_outgoing(ctx)
"""

from __future__ import annotations

from .context import Context

_INCOMING_KEY = object()
_OUTGOING_KEY = object()


class NiceMD(dict):
    """Call metadata: lower-case keys mapped to lists of string values."""

    def get(self, key: str) -> str:  # type: ignore[override]
        """Return the first value for ``key``, or an empty string."""
        values = super().get(key.lower())
        if not values:
            return ""
        return values[0]

    def delete(self, key: str) -> NiceMD:
        """Remove all values for ``key``."""
        self.pop(key.lower(), None)
        return self

    def set(self, key: str, value: str) -> NiceMD:
        """Replace all values for ``key`` with ``value``."""
        self[key.lower()] = [value]
        return self

    def add(self, key: str, value: str) -> NiceMD:
        """Append ``value`` to the values for ``key``."""
        self.setdefault(key.lower(), []).append(value)
        return self

    def clone(self, *copied_keys: str) -> NiceMD:
        """Deep-copy the metadata, keeping only ``copied_keys`` when any are given."""
        wanted = {key.casefold() for key in copied_keys}
        return NiceMD(
            {key: list(values) for key, values in self.items() if not wanted or key.casefold() in wanted}
        )

    def to_outgoing(self, ctx: Context) -> Context:
        """Return a context carrying this metadata for an outgoing call."""
        return ctx.with_value(_OUTGOING_KEY, self)

    def to_incoming(self, ctx: Context) -> Context:
        """Return a context carrying this metadata as incoming metadata."""
        return ctx.with_value(_INCOMING_KEY, self)


def pairs(*args: str) -> NiceMD:
    """Build metadata from alternating keys and values; keys are lower-cased."""
    if len(args) % 2 == 1:
        raise ValueError(f"metadata: pairs got an odd number of input pairs: {len(args)}")
    md = NiceMD()
    for key, value in zip(args[::2], args[1::2]):
        md.add(key, value)
    return md


def extract_incoming(ctx: Context) -> NiceMD:
    """Return the incoming metadata of ``ctx``, or empty metadata."""
    md = ctx.value(_INCOMING_KEY)
    return md if md is not None else NiceMD()


def extract_outgoing(ctx: Context) -> NiceMD:
    """Return the outgoing metadata of ``ctx``, or empty metadata."""
    md = ctx.value(_OUTGOING_KEY)
    return md if md is not None else NiceMD()