"""Rich-text conversion between tracker documents and internal markup.

Inbound, Jira descriptions arrive as Atlassian Document Format (ADF)
trees and are rendered to HTML, the internal markup. Outbound, internal
HTML is turned into Jira wiki markup or wrapped into a minimal ADF
document for create/update payloads.
"""

from __future__ import annotations

import html
import json
import logging
import re
from typing import Any

from tracksync.errors import ConversionError

logger = logging.getLogger(__name__)

# Block nodes that simply wrap their rendered children
BLOCK_TAGS = {
    "paragraph": "p",
    "bulletList": "ul",
    "listItem": "li",
    "blockquote": "blockquote",
}

# Marks that wrap text in a plain tag
MARK_TAGS = {
    "strong": "strong",
    "em": "em",
    "underline": "u",
    "strike": "del",
    "code": "code",
}


# =============================================================================
# ADF -> HTML
# =============================================================================


def adf_to_html(document: Any) -> str:
    """Render a tracker document to internal HTML markup.

    Never raises. ``None`` renders as an empty string, a plain string is
    returned unchanged, and any shape that is not an ADF ``doc`` node is
    serialized to JSON as a last resort.

    Args:
        document: The description value from the tracker.

    Returns:
        The rendered markup.
    """
    if document is None:
        return ""
    if isinstance(document, str):
        return document

    try:
        return _render_document(document)
    except ConversionError as e:
        logger.debug(f"Falling back to JSON for description: {e}")
        return json.dumps(document, default=str)


def _render_document(document: Any) -> str:
    if not isinstance(document, dict):
        raise ConversionError(f"Unsupported document type: {type(document).__name__}")
    if document.get("type") != "doc" or not document.get("content"):
        raise ConversionError(f"Not an ADF doc node: {document.get('type')!r}")
    return _render_nodes(document["content"])


def _render_nodes(content: Any) -> str:
    if not isinstance(content, list):
        return ""

    parts: list[str] = []
    for node in content:
        if isinstance(node, dict):
            parts.append(_render_node(node))
    return "".join(parts)


def _render_node(node: dict[str, Any]) -> str:
    node_type = node.get("type")
    attrs = node.get("attrs") if isinstance(node.get("attrs"), dict) else {}

    if node_type == "text":
        return _render_text(node)
    if node_type == "hardBreak":
        return "<br/>"
    if node_type == "horizontalRule":
        return "<hr/>"

    inner = _render_nodes(node.get("content"))

    if node_type in BLOCK_TAGS:
        tag = BLOCK_TAGS[node_type]
        return f"<{tag}>{inner}</{tag}>"
    if node_type == "orderedList":
        start = attrs.get("order") or 1
        return f'<ol start="{_attr(start)}">{inner}</ol>'
    if node_type == "heading":
        level = attrs.get("level")
        if not isinstance(level, int) or not 1 <= level <= 6:
            level = 1
        return f"<h{level}>{inner}</h{level}>"
    if node_type == "codeBlock":
        language = attrs.get("language") or ""
        return f'<pre><code class="language-{_attr(language)}">{inner}</code></pre>'

    # Unknown node: contribute its children only
    return inner


def _render_text(node: dict[str, Any]) -> str:
    text = html.escape(str(node.get("text") or ""), quote=False)

    marks = node.get("marks")
    if not isinstance(marks, list):
        return text

    # First mark ends up innermost
    for mark in marks:
        if not isinstance(mark, dict):
            continue
        mark_type = mark.get("type")
        attrs = mark.get("attrs") if isinstance(mark.get("attrs"), dict) else {}

        if mark_type in MARK_TAGS:
            tag = MARK_TAGS[mark_type]
            text = f"<{tag}>{text}</{tag}>"
        elif mark_type == "link":
            href = attrs.get("href") or "#"
            text = f'<a href="{_attr(href)}" target="_blank" rel="noopener noreferrer">{text}</a>'
        elif mark_type == "textColor":
            color = attrs.get("color") or "#000000"
            text = f'<span style="color: {_attr(color)}">{text}</span>'
        elif mark_type == "backgroundColor":
            color = attrs.get("backgroundColor") or "transparent"
            text = f'<span style="background-color: {_attr(color)}">{text}</span>'

    return text


def _attr(value: Any) -> str:
    return html.escape(str(value), quote=True)


# =============================================================================
# HTML -> Jira wiki markup
# =============================================================================

_FLAGS = re.IGNORECASE | re.DOTALL

_HEADING_RE = re.compile(r"<h([1-6])[^>]*>(.*?)</h\1>", _FLAGS)
_BOLD_RE = re.compile(r"<(b|strong)(?:\s[^>]*)?>(.*?)</\1>", _FLAGS)
_ITALIC_RE = re.compile(r"<(i|em)(?:\s[^>]*)?>(.*?)</\1>", _FLAGS)
_UNDERLINE_RE = re.compile(r"<u(?:\s[^>]*)?>(.*?)</u>", _FLAGS)
_STRIKE_RE = re.compile(r"<(s|strike|del)(?:\s[^>]*)?>(.*?)</\1>", _FLAGS)
_CODE_RE = re.compile(r"<(code|tt)(?:\s[^>]*)?>(.*?)</\1>", _FLAGS)
_PRE_RE = re.compile(r"<pre[^>]*>(.*?)</pre>", _FLAGS)
_PARAGRAPH_RE = re.compile(r"<p(?:\s[^>]*)?>(.*?)</p>", _FLAGS)
_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_UL_RE = re.compile(r"<ul[^>]*>(.*?)</ul>", _FLAGS)
_OL_RE = re.compile(r"<ol[^>]*>(.*?)</ol>", _FLAGS)
_LI_RE = re.compile(r"<li[^>]*>(.*?)</li>", _FLAGS)
_LINK_RE = re.compile(r"<a[^>]*href=[\"']([^\"']*)[\"'][^>]*>(.*?)</a>", _FLAGS)
_BLOCKQUOTE_RE = re.compile(r"<blockquote[^>]*>(.*?)</blockquote>", _FLAGS)
_TABLE_RE = re.compile(r"<table[^>]*>(.*?)</table>", _FLAGS)
_ROW_RE = re.compile(r"<tr[^>]*>(.*?)</tr>", _FLAGS)
_HEADER_CELL_RE = re.compile(r"<th[^>]*>(.*?)</th>", _FLAGS)
_CELL_RE = re.compile(r"<td[^>]*>(.*?)</td>", _FLAGS)
_TAG_RE = re.compile(r"<[^>]*>")
_EXCESS_NEWLINES_RE = re.compile(r"\n\s*\n\s*\n")


def html_to_wiki(markup: str | None) -> str:
    """Convert internal HTML markup to Jira wiki markup.

    Covers headings, inline emphasis, paragraphs, line breaks, lists,
    links, blockquotes, preformatted blocks and basic tables. Remaining
    tags are stripped and entities decoded.
    """
    if not markup:
        return ""

    text = markup
    # Preformatted blocks first so their content is not re-marked
    text = _PRE_RE.sub(lambda m: f"{{code}}\n{_TAG_RE.sub('', m.group(1))}\n{{code}}\n", text)
    text = _HEADING_RE.sub(lambda m: f"h{m.group(1)}. {m.group(2)}\n", text)
    text = _BOLD_RE.sub(r"*\2*", text)
    text = _ITALIC_RE.sub(r"_\2_", text)
    text = _UNDERLINE_RE.sub(r"+\1+", text)
    text = _STRIKE_RE.sub(r"-\2-", text)
    text = _CODE_RE.sub(r"{{\2}}", text)
    text = _PARAGRAPH_RE.sub(r"\1\n\n", text)
    text = _BREAK_RE.sub("\n", text)
    text = _UL_RE.sub(lambda m: _LI_RE.sub(r"* \1\n", m.group(1)) + "\n", text)
    text = _OL_RE.sub(lambda m: _numbered_items(m.group(1)) + "\n", text)
    text = _LINK_RE.sub(r"[\2|\1]", text)
    text = _BLOCKQUOTE_RE.sub(
        lambda m: "\n".join(f"bq. {line}" for line in m.group(1).split("\n")) + "\n",
        text,
    )
    text = _TABLE_RE.sub(lambda m: _wiki_table(m.group(1)), text)

    text = _TAG_RE.sub("", text)
    text = html.unescape(text).replace("\xa0", " ")
    text = _EXCESS_NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def _numbered_items(content: str) -> str:
    items = _LI_RE.findall(content)
    return "".join(f"{i}. {item}\n" for i, item in enumerate(items, start=1))


def _wiki_table(content: str) -> str:
    lines = []
    for row in _ROW_RE.findall(content):
        headers = _HEADER_CELL_RE.findall(row)
        if headers:
            lines.append("||" + "".join(f" {h.strip()} ||" for h in headers))
            continue
        cells = _CELL_RE.findall(row)
        if cells:
            lines.append("|" + "".join(f" {c.strip()} |" for c in cells))
    return "\n".join(lines) + "\n\n"


# =============================================================================
# Plain text -> ADF
# =============================================================================


def text_to_adf(text: str | None) -> dict[str, Any] | None:
    """Wrap plain text into a minimal ADF document.

    Blank lines separate paragraphs; single newlines become hard breaks.
    Returns None for empty text so callers can omit the field.
    """
    if not text or not text.strip():
        return None

    paragraphs = []
    for block in re.split(r"\n\s*\n", text.strip()):
        content: list[dict[str, Any]] = []
        for i, line in enumerate(block.split("\n")):
            if i:
                content.append({"type": "hardBreak"})
            if line:
                content.append({"type": "text", "text": line})
        paragraphs.append({"type": "paragraph", "content": content})

    return {"type": "doc", "version": 1, "content": paragraphs}
