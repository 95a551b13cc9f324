"""Tests for response_parser module."""

import pytest

from storyloom.story.prompt_builder import VARIANT_WORD
from storyloom.story.response_parser import (
    FALLBACK_OPTIONS,
    FALLBACK_STRATEGY,
    FALLBACK_TEXT,
    FALLBACK_WORD,
    clean_message,
    extract_deliverable_regex,
    parse_response,
    parse_response_with_strategy,
    strip_json_debris,
)


class TestCleanMessage:
    """Tests for clean_message."""

    def test_fenced_block_is_authoritative(self):
        """Should return only the fenced block body."""
        raw = 'Sure! {"deliverable": "outside"}\n```json\n{"deliverable": "inside"}\n```'
        assert clean_message(raw) == '{"deliverable": "inside"}'

    def test_stray_fences_removed(self):
        assert clean_message("```json\nabc") == "abc"

    def test_empty(self):
        assert clean_message(None) == ""


class TestParseJson:
    """Tests for the JSON layer."""

    def test_fenced_json_text(self):
        """Should recover the exact deliverable from a fenced json block."""
        raw = '```json\n{"deliverable": "Hello world"}\n```'
        assert parse_response(raw) == "Hello world"

    def test_json_options(self):
        raw = '{"reasoning": "r", "deliverable": ["走", "留", "等"]}'
        assert parse_response(raw, generate_options=True) == ["走", "留", "等"]

    def test_json_with_prose_around(self):
        raw = 'Here you go:\n{"reasoning": "x", "deliverable": "雨停了。"}\nThanks'
        assert parse_response(raw) == "雨停了。"

    def test_missing_deliverable_falls_through(self):
        """Should fall through when the JSON has no deliverable."""
        raw = '{"reasoning": "only thinking"}'
        assert parse_response(raw, generate_options=True) == FALLBACK_OPTIONS


class TestRegexLayer:
    """Tests for regex extraction."""

    def test_malformed_option_array(self):
        """Should split the array on commas outside quotes."""
        raw = '{"reasoning": "x", "deliverable": ["A, really", "B", "C"], oops'
        assert parse_response(raw, generate_options=True) == ["A, really", "B", "C"]

    def test_malformed_text(self):
        raw = '{"reasoning": "x" "deliverable": "He said \\"run\\" now"'
        assert parse_response(raw) == 'He said "run" now'

    def test_unterminated_text(self):
        raw = '{"deliverable": "The door creaks'
        assert extract_deliverable_regex(raw, "dynamic-text") == "The door creaks"


class TestHeuristicLayer:
    """Tests for heuristic extraction."""

    def test_numbered_options(self):
        raw = "Options:\n1. 打开门\n2. 关上窗\n3. 大声呼喊"
        assert parse_response(raw, generate_options=True) == ["打开门", "关上窗", "大声呼喊"]

    def test_bulleted_options(self):
        raw = "- 向左\n- 向右"
        assert parse_response(raw, generate_options=True) == ["向左", "向右"]

    def test_short_lines_as_options(self):
        raw = "打开门\n关上窗\n大声呼喊"
        assert parse_response(raw, generate_options=True) == ["打开门", "关上窗", "大声呼喊"]

    def test_chinese_option_marker(self):
        raw = "思考过程很长很长很长很长很长很长，所以给出结论。最终选项：前进，后退，等待"
        assert parse_response(raw, generate_options=True) == ["前进", "后退", "等待"]

    def test_text_marker(self):
        raw = "分析：略\n最终文本：月光洒在书架上。"
        assert parse_response(raw) == "月光洒在书架上。"

    def test_longest_paragraph(self):
        """Should pick the longest paragraph without JSON artifacts."""
        long_paragraph = "The lantern flickered as the wind pushed through the broken window pane."
        raw = f"Short intro line.\n\n{long_paragraph}\n\nAnother paragraph that is long enough."
        assert parse_response(raw) == long_paragraph

    def test_word_marker(self):
        raw = "思考：需要一个形容词\n最终词语：幽暗"
        assert parse_response(raw, variant=VARIANT_WORD) == "幽暗"

    def test_word_shortest_line(self):
        raw = "Here is a word for you to use in the story\n幽暗"
        assert parse_response(raw, variant=VARIANT_WORD) == "幽暗"


class TestFallbackLayer:
    """Tests for the fixed fallback."""

    @pytest.mark.parametrize("raw", [
        "",
        "The hero walks slowly into the dark and quiet forest, unsure of anything at all.",
        '{"deliverable": [',
        None,
    ])
    def test_option_mode_never_empty(self, raw):
        """Should always return a non-empty option list."""
        result = parse_response(raw, generate_options=True)

        assert isinstance(result, list)
        assert len(result) >= 1

    def test_option_mode_default_list(self):
        assert parse_response("", generate_options=True) == FALLBACK_OPTIONS

    def test_text_mode_failure_sentence(self):
        """Should return the fixed sentence when nothing usable remains."""
        assert parse_response("") == FALLBACK_TEXT
        assert parse_response("```json\n{}\n```") == FALLBACK_TEXT

    def test_word_mode_fallback(self):
        assert parse_response("{}", variant=VARIANT_WORD) == FALLBACK_WORD

    def test_fallback_list_is_a_copy(self):
        """Should not hand out the module-level fallback list."""
        result = parse_response("", generate_options=True)
        result.append("mutated")
        assert FALLBACK_OPTIONS == ["选项 1", "选项 2", "选项 3", "选项 4"]


class TestJsonDebris:
    """Tests for stripping JSON fragments before text heuristics."""

    def test_unclosed_brace_tail_removed(self):
        assert strip_json_debris("Before {broken") == "Before"

    def test_unclosed_brace_reply(self):
        """Should not hand back a bare JSON fragment as text."""
        assert parse_response("{broken") == FALLBACK_TEXT

    def test_marker_inside_json_ignored(self):
        """Should not pick up a marker that only appears inside JSON."""
        raw = '{"reasoning": "关于内容：不要泄露", "deliverable": 5}'
        assert parse_response(raw) == FALLBACK_TEXT

    def test_marker_outside_json_kept(self):
        raw = '{"reasoning": "x"}\n内容：夜色很深。'
        assert parse_response(raw) == "夜色很深。"


class TestParseResponseWithStrategy:
    """Tests for strategy reporting."""

    @pytest.mark.parametrize("raw, expected", [
        ('{"deliverable": "好"}', "json"),
        ('{"deliverable": "unterminated', "regex"),
        ("最终文本：月光。", "heuristic"),
        ("{}", FALLBACK_STRATEGY),
    ])
    def test_reports_strategy(self, raw, expected):
        _, strategy = parse_response_with_strategy(raw)
        assert strategy == expected

    def test_fallback_content(self):
        content, strategy = parse_response_with_strategy("", generate_options=True)

        assert strategy == FALLBACK_STRATEGY
        assert content == FALLBACK_OPTIONS
