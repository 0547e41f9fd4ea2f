"""Tests for edudesign.normalize."""

import pytest

from edudesign.normalize import FULL_WIDTH_COMMA_TOKEN, normalize

SAMPLES = [
    "",
    "plain text",
    "SECTION，id=secA，role=intro",
    "“quoted” and ‘single’",
    "```text\nBEGIN_S3_LAYOUT\nEND_S3_LAYOUT\n```",
    "<b>bold</b> and <br/> tags",
    "`<i></i>``text",
    "KEY：value\twith\t\ttabs",
    "gapBelow=20PX, size=18PT",
    "line one\r\nline two\rline three",
]


class TestNormalize:
    def test_full_width_comma(self) -> None:
        assert normalize("SECTION，id=secA，role=intro") == "SECTION,id=secA,role=intro"
        assert FULL_WIDTH_COMMA_TOKEN not in normalize("a，b")

    def test_smart_quotes(self) -> None:
        assert normalize("hint=“Title”, note=‘x’") == "hint=\"Title\", note='x'"

    def test_code_fences_removed(self) -> None:
        text = normalize("```text\nBEGIN_S4\nEND_S4\n```")
        assert "`" not in text
        assert "BEGIN_S4" in text

    def test_fence_language_tag_does_not_eat_records(self) -> None:
        assert normalize("```SECTION, id=a") == "SECTION, id=a"

    def test_html_tags_removed(self) -> None:
        assert normalize("<b>Title</b>") == "Title"

    def test_html_tag_never_spans_lines(self) -> None:
        text = "a < b\nc > d"
        assert normalize(text) == text

    def test_full_width_colon_and_tabs(self) -> None:
        assert normalize("KEY：value\t\tnext") == "KEY:value next"

    def test_upper_case_units(self) -> None:
        assert normalize("gapBelow=20PX, size=18PT") == "gapBelow=20px, size=18pt"

    def test_line_count_preserved(self) -> None:
        text = "a\r\nb\rc\n\nd"
        assert normalize(text).split("\n") == ["a", "b", "c", "", "d"]

    def test_empty_input(self) -> None:
        assert normalize("") == ""
        assert normalize(None) == ""

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text: str) -> None:
        once = normalize(text)
        assert normalize(once) == once
