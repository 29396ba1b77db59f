"""Tests for stream line framing: splitting, classification, delta extraction.

Validates:
- Partial lines retained across feeds, CRLF handling
- Push-back of complete lines in front of the partial tail
- Comment / blank / noise / terminator / data classification
- choices[0].delta.content extraction with safe navigation
"""

import json

import pytest

from assistant_stream.sse_decoder import (
    BLANK,
    COMMENT,
    DATA,
    MALFORMED,
    TERMINATOR,
    Frame,
    LineSplitter,
    classify_line,
    extract_delta,
)


def _payload(content):
    return json.dumps({"choices": [{"delta": {"content": content}}]})


# ── LineSplitter ──────────────────────────────────────────────────────


class TestLineSplitter:
    def test_complete_lines(self):
        splitter = LineSplitter()
        assert splitter.feed("a\nb\n") == ["a", "b"]
        assert splitter.pending == ""

    def test_partial_line_retained(self):
        splitter = LineSplitter()
        assert splitter.feed("data: hel") == []
        assert splitter.pending == "data: hel"
        assert splitter.feed("lo\nnext") == ["data: hello"]
        assert splitter.pending == "next"

    def test_crlf_stripped(self):
        splitter = LineSplitter()
        assert splitter.feed("one\r\ntwo\r\n") == ["one", "two"]

    def test_cr_split_from_lf_across_feeds(self):
        splitter = LineSplitter()
        assert splitter.feed("one\r") == []
        assert splitter.feed("\n") == ["one"]

    def test_bare_cr_is_not_a_terminator(self):
        splitter = LineSplitter()
        assert splitter.feed("a\rb\n") == ["a\rb"]

    def test_empty_lines_emitted(self):
        splitter = LineSplitter()
        assert splitter.feed("\n\n") == ["", ""]

    def test_unread_goes_in_front_of_tail(self):
        splitter = LineSplitter()
        splitter.feed("first\nsecond\ntail")
        splitter.unread(["first", "second"])
        assert splitter.pending == "first\nsecond\ntail"
        assert splitter.feed("\n") == ["first", "second", "tail"]

    def test_unread_nothing(self):
        splitter = LineSplitter()
        splitter.feed("tail")
        splitter.unread([])
        assert splitter.pending == "tail"

    def test_flush_emits_partial_once(self):
        splitter = LineSplitter()
        splitter.feed("data: end")
        assert splitter.flush() == ["data: end"]
        assert splitter.flush() == []

    def test_flush_strips_cr(self):
        splitter = LineSplitter()
        splitter.feed("x\r")
        assert splitter.flush() == ["x"]


# ── classify_line ─────────────────────────────────────────────────────


class TestClassifyLine:
    def test_comment(self):
        assert classify_line(": keep-alive") == Frame(COMMENT)

    def test_bare_colon_is_comment(self):
        assert classify_line(":") == Frame(COMMENT)

    def test_blank(self):
        assert classify_line("") == Frame(BLANK)
        assert classify_line("   \t") == Frame(BLANK)

    def test_unprefixed_line_is_noise(self):
        assert classify_line("event: message") == Frame(MALFORMED)

    def test_prefix_requires_space(self):
        assert classify_line("data:{}") == Frame(MALFORMED)

    def test_data_payload_trimmed(self):
        assert classify_line('data:  {"a": 1}  ') == Frame(DATA, '{"a": 1}')

    def test_terminator(self):
        assert classify_line("data: [DONE]") == Frame(TERMINATOR)

    def test_terminator_with_whitespace(self):
        assert classify_line("data: [DONE]   ") == Frame(TERMINATOR)

    def test_bare_sentinel_without_prefix_is_noise(self):
        assert classify_line("[DONE]") == Frame(MALFORMED)


# ── extract_delta ─────────────────────────────────────────────────────


class TestExtractDelta:
    def test_content_present(self):
        assert extract_delta(_payload("Hello")) == "Hello"

    def test_empty_content(self):
        assert extract_delta(_payload("")) is None

    def test_role_only_delta(self):
        assert extract_delta('{"choices":[{"delta":{"role":"assistant"}}]}') is None

    def test_no_choices(self):
        assert extract_delta('{"id":"x"}') is None
        assert extract_delta('{"choices":[]}') is None

    def test_ill_typed_levels(self):
        assert extract_delta('{"choices":{"0":1}}') is None
        assert extract_delta('{"choices":[{"delta":"text"}]}') is None
        assert extract_delta('{"choices":[{"delta":{"content":42}}]}') is None
        assert extract_delta("[1, 2]") is None
        assert extract_delta('"just a string"') is None

    def test_unicode_content(self):
        assert extract_delta(_payload("Análise 📈")) == "Análise 📈"

    def test_truncated_json_raises(self):
        with pytest.raises(ValueError):
            extract_delta('{"choices":[{"delta":{"content":"He')

    def test_non_json_raises(self):
        with pytest.raises(ValueError):
            extract_delta("not json")
