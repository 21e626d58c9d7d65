import base64

from rpcmiddleware.metautils import pairs
from rpcmiddleware.tracing_metadata import MetadataTextMap, encode_key_value


def test_set_lowercases_and_overrides_existing_values():
    md = pairs("a", "1", "a", "2")
    MetadataTextMap(md).set("A", "3")
    assert md["a"] == ["3"]


def test_set_creates_new_key():
    md = pairs()
    MetadataTextMap(md).set("New-Key", "value")
    assert md == {"new-key": ["value"]}


def test_set_encodes_binary_values():
    md = pairs()
    MetadataTextMap(md).set("Trace-Bin", "payload")
    assert list(md) == ["trace-bin"]
    assert base64.b64decode(md["trace-bin"][0]) == b"payload"


def test_encode_key_value_binary_pinned():
    assert encode_key_value("x-bin", "hi") == ("x-bin", "aGk=")


def test_encode_key_value_plain_value_untouched():
    assert encode_key_value("Some-Key", "Value") == ("some-key", "Value")


def test_items_yields_every_value():
    md = pairs("a", "1", "a", "2", "b", "3")
    assert sorted(MetadataTextMap(md).items()) == [("a", "1"), ("a", "2"), ("b", "3")]


def test_items_of_empty_metadata():
    assert list(MetadataTextMap(pairs()).items()) == []


def test_set_then_items_round_trip():
    text_map = MetadataTextMap(pairs())
    text_map.set("K1", "v1")
    text_map.set("K2", "v2")
    assert dict(text_map.items()) == {"k1": "v1", "k2": "v2"}