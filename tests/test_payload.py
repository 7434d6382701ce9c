import json

import pytest

from thing_sim.payload import Structured, Text, classify, encode, envelope, parse_object


def test_plain_text_stays_text():
    assert classify("hello") == Text("hello")
    assert envelope(classify("hello"), time="T") == {"time": "T", "message": "hello"}


def test_brace_delimited_is_structured():
    payload = classify('{"a":1}')
    assert payload == Structured({"a": 1})
    assert envelope(payload, time="T") == {"time": "T", "message": {"a": 1}}


def test_malformed_object_falls_back_to_text():
    assert classify("{not json}") == Text("{not json}")


def test_array_is_not_probed():
    assert classify("[1, 2]") == Text("[1, 2]")


def test_envelope_fills_time():
    env = envelope(Text("x"))
    assert env["message"] == "x"
    assert env["time"]


def test_encode_is_compact_json():
    assert json.loads(encode({"a": [1, 2]})) == {"a": [1, 2]}
    assert b" " not in encode({"a": [1, 2]})


def test_parse_object_rejects_non_objects():
    assert parse_object('{"k": "v"}') == {"k": "v"}
    with pytest.raises(ValueError):
        parse_object("[1]")
    with pytest.raises(ValueError):
        parse_object("nope")
