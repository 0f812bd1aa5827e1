"""Tests for rich-text conversion between Jira documents and HTML."""

from __future__ import annotations

import json
from typing import Any

from tracksync.sync.content import adf_to_html, html_to_wiki, text_to_adf


def _doc(*content: dict[str, Any]) -> dict[str, Any]:
    return {"type": "doc", "version": 1, "content": list(content)}


def _paragraph(*content: dict[str, Any]) -> dict[str, Any]:
    return {"type": "paragraph", "content": list(content)}


def _text(text: str, *marks: dict[str, Any]) -> dict[str, Any]:
    node: dict[str, Any] = {"type": "text", "text": text}
    if marks:
        node["marks"] = list(marks)
    return node


class TestAdfToHtml:
    """Test rendering of Jira documents to HTML."""

    def test_none_and_strings(self) -> None:
        """Test None renders empty and strings pass through unchanged."""
        assert adf_to_html(None) == ""
        assert adf_to_html("already <b>html</b>") == "already <b>html</b>"

    def test_paragraph_with_strong(self) -> None:
        """Test a paragraph with a bold run."""
        document = _doc(_paragraph(_text("hello "), _text("world", {"type": "strong"})))
        assert adf_to_html(document) == "<p>hello <strong>world</strong></p>"

    def test_first_mark_is_innermost(self) -> None:
        """Test marks nest in list order."""
        document = _doc(_paragraph(_text("x", {"type": "strong"}, {"type": "em"})))
        assert adf_to_html(document) == "<p><em><strong>x</strong></em></p>"

    def test_link_and_color_marks(self) -> None:
        """Test attribute-bearing marks and their defaults."""
        document = _doc(
            _paragraph(
                _text("site", {"type": "link", "attrs": {"href": "https://example.com"}}),
                _text("nowhere", {"type": "link"}),
                _text("ink", {"type": "textColor"}),
                _text("bg", {"type": "backgroundColor", "attrs": {"backgroundColor": "#ff0"}}),
            )
        )
        assert adf_to_html(document) == (
            '<p><a href="https://example.com" target="_blank" rel="noopener noreferrer">site</a>'
            '<a href="#" target="_blank" rel="noopener noreferrer">nowhere</a>'
            '<span style="color: #000000">ink</span>'
            '<span style="background-color: #ff0">bg</span></p>'
        )

    def test_block_nodes(self) -> None:
        """Test headings, lists, code blocks and breaks."""
        document = _doc(
            {"type": "heading", "attrs": {"level": 2}, "content": [_text("Title")]},
            {"type": "heading", "attrs": {"level": 9}, "content": [_text("Clamped")]},
            {"type": "bulletList", "content": [{"type": "listItem", "content": [_paragraph(_text("one"))]}]},
            {"type": "orderedList", "content": [{"type": "listItem", "content": [_paragraph(_text("first"))]}]},
            {"type": "codeBlock", "attrs": {"language": "python"}, "content": [_text("print(1)")]},
            _paragraph(_text("a"), {"type": "hardBreak"}, _text("b")),
            {"type": "horizontalRule"},
        )
        assert adf_to_html(document) == (
            "<h2>Title</h2>"
            "<h1>Clamped</h1>"
            "<ul><li><p>one</p></li></ul>"
            '<ol start="1"><li><p>first</p></li></ol>'
            '<pre><code class="language-python">print(1)</code></pre>'
            "<p>a<br/>b</p>"
            "<hr/>"
        )

    def test_unknown_node_renders_children(self) -> None:
        """Test an unsupported node contributes only its children."""
        document = _doc({"type": "panel", "attrs": {"panelType": "info"}, "content": [_paragraph(_text("inside"))]})
        assert adf_to_html(document) == "<p>inside</p>"

    def test_text_is_escaped(self) -> None:
        """Test text content cannot inject markup."""
        document = _doc(_paragraph(_text("a < b & <script>")))
        assert adf_to_html(document) == "<p>a &lt; b &amp; &lt;script&gt;</p>"

    def test_unrecognized_shape_falls_back_to_json(self) -> None:
        """Test non-doc values are serialized instead of raising."""
        empty = {"type": "doc", "content": []}
        assert adf_to_html(empty) == json.dumps(empty)
        assert adf_to_html({"foo": 1}) == '{"foo": 1}'
        assert adf_to_html([1, 2]) == "[1, 2]"


class TestHtmlToWiki:
    """Test conversion of HTML to Jira wiki markup."""

    def test_empty(self) -> None:
        assert html_to_wiki(None) == ""
        assert html_to_wiki("") == ""

    def test_paragraph_with_strong(self) -> None:
        """Test inline bold inside a paragraph."""
        assert html_to_wiki("<p>hello <strong>world</strong></p>") == "hello *world*"

    def test_inline_marks(self) -> None:
        """Test italic, underline, strike and code."""
        markup = "<em>i</em> <u>u</u> <del>d</del> <code>c</code>"
        assert html_to_wiki(markup) == "_i_ +u+ -d- {{c}}"

    def test_headings_and_paragraphs(self) -> None:
        """Test headings and paragraph spacing."""
        markup = "<h2>Title</h2><p>a</p><p>b</p>"
        assert html_to_wiki(markup) == "h2. Title\na\n\nb"

    def test_lists(self) -> None:
        """Test bullet and numbered lists."""
        assert html_to_wiki("<ul><li>one</li><li>two</li></ul>") == "* one\n* two"
        assert html_to_wiki("<ol><li>a</li><li>b</li></ol>") == "1. a\n2. b"

    def test_links_and_breaks(self) -> None:
        """Test links become [text|url] and breaks become newlines."""
        markup = 'see <a href="https://example.com" target="_blank">site</a><br/>next'
        assert html_to_wiki(markup) == "see [site|https://example.com]\nnext"

    def test_blockquote(self) -> None:
        assert html_to_wiki("<blockquote>quoted</blockquote>") == "bq. quoted"

    def test_preformatted_content_is_not_remarked(self) -> None:
        """Test tags inside pre blocks are stripped, not converted."""
        markup = '<pre><code class="language-py">x = <b>1</b></code></pre>'
        assert html_to_wiki(markup) == "{code}\nx = 1\n{code}"

    def test_table(self) -> None:
        """Test header and data rows."""
        markup = "<table><tr><th>Name</th><th>Age</th></tr><tr><td>Ada</td><td>36</td></tr></table>"
        assert html_to_wiki(markup) == "|| Name || Age ||\n| Ada | 36 |"

    def test_entities_and_unknown_tags(self) -> None:
        """Test entities are decoded and unknown tags stripped."""
        assert html_to_wiki("<p>a &amp; b&nbsp;c <span>d</span></p>") == "a & b c d"


class TestTextToAdf:
    """Test wrapping plain text into a Jira document."""

    def test_empty_returns_none(self) -> None:
        assert text_to_adf(None) is None
        assert text_to_adf("") is None
        assert text_to_adf("   \n ") is None

    def test_single_paragraph(self) -> None:
        assert text_to_adf("Hello") == _doc(_paragraph(_text("Hello")))

    def test_paragraphs_and_hard_breaks(self) -> None:
        """Test blank lines split paragraphs and single newlines become breaks."""
        assert text_to_adf("a\nb\n\nc") == _doc(
            _paragraph(_text("a"), {"type": "hardBreak"}, _text("b")),
            _paragraph(_text("c")),
        )
