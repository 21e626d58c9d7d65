"""Call metadata used as a text map carrier for trace propagation."""

from __future__ import annotations

import base64
from typing import Iterator

from .metautils import NiceMD

BIN_HEADER_SUFFIX = "-bin"


def encode_key_value(key: str, value: str) -> tuple[str, str]:
    """Encode a key and value for transmission as call metadata.

    Keys are lower-cased; values of keys ending in ``-bin`` are base64 encoded.
    """
    key = key.lower()
    if key.endswith(BIN_HEADER_SUFFIX):
        value = base64.b64encode(value.encode()).decode("ascii")
    return key, value


class MetadataTextMap:
    """A text map carrier that reads and writes call metadata."""

    def __init__(self, md: NiceMD) -> None:
        self.md = md

    def set(self, key: str, value: str) -> None:
        """Set ``key`` to the single value ``value``, replacing any earlier values."""
        encoded_key, encoded_value = encode_key_value(key, value)
        self.md[encoded_key] = [encoded_value]

    def items(self) -> Iterator[tuple[str, str]]:
        """Yield every key and value pair, one pair for each value of a key."""
        for key, values in self.md.items():
            for value in values:
                yield key, value