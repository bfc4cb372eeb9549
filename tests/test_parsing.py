"""Tests for messageflow/providers/parsing.py: JSON extraction from vendor prose."""

import pytest

from messageflow.errors import ProviderError
from messageflow.providers.parsing import (
    extract_json,
    join_lines,
    parse_actions,
    parse_json_payload,
    running_average,
)


class TestExtractJson:

    def test_plain_object_unchanged(self):
        assert extract_json('{"a": 1}') == '{"a": 1}'

    def test_strips_surrounding_prose(self):
        text = 'Sure! Here you go: {"a": 1} Let me know.'
        assert extract_json(text) == '{"a": 1}'

    def test_strips_code_fence(self):
        text = '```json\n{"a": [1, 2]}\n```'
        assert extract_json(text) == '{"a": [1, 2]}'

    def test_array(self):
        assert extract_json('Actions: ["a", "b"].') == '["a", "b"]'

    def test_first_opener_to_last_closer(self):
        text = 'x [1] and {"b": 2} y'
        assert extract_json(text) == '[1] and {"b": 2}'

    def test_no_json_returns_input(self):
        assert extract_json("no braces here") == "no braces here"

    def test_closer_before_opener_returns_input(self):
        assert extract_json("} backwards {") == "} backwards {"


class TestParseJsonPayload:

    def test_decodes_wrapped_object(self):
        assert parse_json_payload('Result: {"ok": true}') == {"ok": True}

    def test_malformed_raises_502(self):
        with pytest.raises(ProviderError) as exc_info:
            parse_json_payload('{"ok": tru')
        assert exc_info.value.status_code == 502


class TestParseActions:

    def test_bare_list(self):
        assert parse_actions(["call", "email"]) == ["call", "email"]

    def test_wrapped_list(self):
        assert parse_actions({"actions": ["call"]}) == ["call"]

    def test_object_without_actions_is_empty(self):
        assert parse_actions({"other": 1}) == []

    def test_scalar_raises(self):
        with pytest.raises(ProviderError):
            parse_actions("call")


def test_join_lines():
    assert join_lines(["a", "b"]) == "a\nb"


def test_running_average():
    assert running_average(0.0, 10.0, 1) == 10.0
    assert running_average(10.0, 20.0, 2) == 15.0
