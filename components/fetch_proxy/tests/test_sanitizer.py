"""Tests for head extraction and body snippets."""

from __future__ import annotations

import pytest
from fetch_proxy.sanitizer import extract_body_snippet, extract_head, strip_scripts


def test_extracts_head_content() -> None:
    html = "<html><head><title>Test</title></head><body>Hi</body></html>"
    assert extract_head(html) == "<title>Test</title>"


def test_head_with_attributes_and_mixed_case() -> None:
    html = '<HTML><HEAD lang="en"><Title>X</Title></HEAD><BODY></BODY></HTML>'
    assert extract_head(html) == "<Title>X</Title>"


def test_removes_executable_scripts() -> None:
    html = (
        "<head><title>T</title>"
        "<script>alert(1)</script>"
        '<script src="https://cdn.example.com/app.js"></script>'
        '<SCRIPT type="text/javascript">x()</SCRIPT>'
        "</head>"
    )
    head = extract_head(html)
    assert "<title>T</title>" in head
    assert "script" not in head.lower()


def test_preserves_json_ld() -> None:
    block = '<script type="application/ld+json">{"@type":"Article"}</script>'
    html = f"<head><script>evil()</script>{block}</head>"
    assert extract_head(html) == block


def test_preserves_json_ld_with_single_quotes_and_case() -> None:
    block = "<script type='Application/LD+JSON'>{}</script>"
    assert extract_head(f"<head>{block}</head>") == block


def test_data_type_attribute_does_not_count_as_type() -> None:
    html = '<head><script data-type="application/ld+json">alert(1)</script></head>'
    assert extract_head(html) == ""


@pytest.mark.parametrize(
    "script",
    [
        '<script src="https://evil.test/type=application/ld+json"></script>',
        "<script data-x=' type=\"application/ld+json\"'>alert(1)</script>",
        '<script type="text/javascript" type="application/ld+json">alert(1)</script>',
    ],
)
def test_type_text_outside_a_real_type_attribute_is_removed(script: str) -> None:
    assert extract_head(f"<head><title>T</title>{script}</head>") == "<title>T</title>"


def test_unquoted_json_ld_type_preserved() -> None:
    block = "<script type=application/ld+json>{}</script>"
    assert extract_head(f"<head>{block}</head>") == block


def test_nested_script_cannot_reassemble() -> None:
    html = "<head><scr<script>x</script>ipt>alert(1)</script></head>"
    assert "<script" not in extract_head(html).lower()


def test_unclosed_script_is_removed_to_end() -> None:
    html = "<head><title>T</title><script>alert(1)"
    assert extract_head(html) == "<title>T</title>"


def test_closing_tag_with_whitespace() -> None:
    assert strip_scripts("<script>a()</script >ok") == "ok"


def test_no_head_tag_treats_input_as_head() -> None:
    fragment = '<meta name="og:title" content="X"><script>bad()</script>'
    assert extract_head(fragment) == '<meta name="og:title" content="X">'


def test_body_without_head_is_returned_as_is() -> None:
    assert extract_head("<body>No head tag</body>") == "<body>No head tag</body>"


def test_unclosed_head_runs_to_end() -> None:
    assert extract_head("<head><title>Partial") == "<title>Partial"


def test_empty_head() -> None:
    assert extract_head("<head></head>") == ""
    assert extract_head("") == ""


def test_body_snippet_basic() -> None:
    html = "<html><head></head><body><p>Hello</p></body></html>"
    assert extract_body_snippet(html) == "<p>Hello</p>"


def test_body_snippet_truncated() -> None:
    html = "<body>" + "a" * 5000 + "</body>"
    assert extract_body_snippet(html) == "a" * 1024
    assert extract_body_snippet(html, 10) == "a" * 10


def test_body_snippet_without_closing_tag() -> None:
    assert extract_body_snippet('<body class="x">text') == "text"


def test_body_snippet_after_head_when_no_body_tag() -> None:
    assert extract_body_snippet("<head></head><div>x</div>") == "<div>x</div>"


def test_body_snippet_empty_without_markers() -> None:
    assert extract_body_snippet("<div>no markers</div>") == ""
