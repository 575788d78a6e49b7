"""Markdown to HTML for ADO rich-text fields, and a best-effort way back.

``to_markdown`` is not an inverse of ``to_html``. It only undoes what ADO does
to plain text (``<br>`` line breaks). Inline code, lists and links are left as
HTML. Use ``same_content`` to compare a stored description with a live issue
body: both sides go through the same pipeline, so a description written by
the forward sync compares equal to the body it came from.
"""

import re

import markdown

MARKDOWN_EXTENSIONS = ["fenced_code", "tables"]

_PRE_RE = re.compile(r"(<pre\b[^>]*>.*?</pre>)", re.IGNORECASE | re.DOTALL)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)


def to_html(text: str | None) -> str:
    """Render issue or comment markdown; empty input gives an empty string."""
    if not text:
        return ""
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)


def to_markdown(html: str | None) -> str:
    if not html:
        return ""
    # split() with a capture group alternates text / <pre> block / text ...
    parts = _PRE_RE.split(html)
    for i in range(0, len(parts), 2):
        parts[i] = _BR_RE.sub("\n", parts[i])
    return "".join(parts)


def same_content(html: str | None, text: str | None) -> bool:
    """True when ADO description `html` carries the same content as issue body `text`."""
    return to_markdown(html) == to_markdown(to_html(text))
