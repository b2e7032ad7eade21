"""formatting.statement_formatter
=================================

Pure text-to-HTML helpers applied to scraped Codeforces statements.

Codeforces marks inline mathematics with a three character ``$$$`` delimiter.
The helpers in this module turn such text into HTML that can be displayed
directly:

* ``format_description`` escapes plain text, turns newlines into ``<br/>`` and
  renders every ``$$$...$$$`` span with ``matplotlib``'s mathtext engine.
* ``format_markup`` does the same for the text nodes of an HTML fragment and
  keeps its tags (statement body and notes are stored as markup).
* ``format_examples`` rebuilds the input/output pairing of the sample tests
  from their flattened text.

Rendering a formula never raises: when mathtext cannot parse an expression
the escaped source is emitted inside a ``math-error`` span instead.
"""

from __future__ import annotations

import functools
import html
import io
import logging
import re
from typing import List

from bs4 import BeautifulSoup, Comment, NavigableString
from matplotlib import mathtext
from matplotlib.font_manager import FontProperties

logger = logging.getLogger(__name__)

MATH_DELIM = "$$$"
MATH_FONT_SIZE = 12
MATH_DPI = 72

# Entities a locale/encoding round trip leaves behind; "&amp;" goes last
_ENTITY_FIXES = (
    ("&nbsp;", " "),
    ("\xa0", " "),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&amp;", "&"),
)

_UNESCAPED_HASH_OR_DOLLAR = re.compile(r"(?<!\\)([#$])")
_UNESCAPED_TILDE = re.compile(r"(?<!\\)~")

# Codeforces macros mathtext has no parser for, mapped to ones it does
_MACRO_REWRITES = (
    (re.compile(r"\\texttt(?![A-Za-z])"), r"\\mathtt"),
    (re.compile(r"\\bmod(?![A-Za-z])"), r"\\;\\mathrm{mod}\\;"),
)

_SVG_PROLOGUE = re.compile(r"<\?xml.*?\?>|<!DOCTYPE.*?>|<!--.*?-->|<metadata>.*?</metadata>", re.S)

_EXAMPLE_MARKERS = ("input", "output")


def escape_html(value: str) -> str:
    return html.escape(value, quote=True).replace("&#x27;", "&#39;")


def escape_with_breaks(value: str) -> str:
    return escape_html(value).replace("\n", "<br/>")


def unescape_entities(text: str) -> str:
    for entity, replacement in _ENTITY_FIXES:
        text = text.replace(entity, replacement)
    return text


def escape_math_specials(expression: str) -> str:
    """Escape characters the math engine would otherwise read as markup."""
    expression = _UNESCAPED_HASH_OR_DOLLAR.sub(r"\\\1", expression)
    return _UNESCAPED_TILDE.sub(r"\\sim ", expression)


def rewrite_macros(expression: str) -> str:
    for pattern, replacement in _MACRO_REWRITES:
        expression = pattern.sub(replacement, expression)
    return expression


def _math_to_svg(expression: str):
    buffer = io.BytesIO()
    depth = mathtext.math_to_image(
        f"${expression}$",
        buffer,
        prop=FontProperties(size=MATH_FONT_SIZE),
        dpi=MATH_DPI,
        format="svg",
    )
    svg = _SVG_PROLOGUE.sub("", buffer.getvalue().decode("utf-8")).strip()
    return svg, depth


@functools.lru_cache(maxsize=2048)
def render_math(expression: str) -> str:
    """Render one TeX expression to an inline HTML element."""
    expression = expression.strip()
    if not expression:
        return ""
    try:
        svg, depth = _math_to_svg(expression)
    except Exception as exc:
        # Malformed formulas must not take the whole statement down
        logger.debug(f"Unable to render math expression {expression!r}: {exc}")
        return f'<span class="math-error">{escape_html(expression)}</span>'
    return (
        f'<span class="math" style="display:inline-block;vertical-align:-{float(depth or 0):.1f}pt">'
        f'{svg}</span>'
    )


def _format_inline(text: str, line_breaks: bool = True) -> str:
    plain = escape_with_breaks if line_breaks else escape_html
    cursor = 0
    parts: List[str] = []

    while cursor < len(text):
        start = text.find(MATH_DELIM, cursor)
        if start == -1:
            parts.append(plain(text[cursor:]))
            break

        if start > cursor:
            parts.append(plain(text[cursor:start]))

        end = text.find(MATH_DELIM, start + len(MATH_DELIM))
        if end == -1:
            # Unterminated delimiter: keep the remainder as text
            parts.append(plain(text[start:]))
            break

        expression = text[start + len(MATH_DELIM):end]
        parts.append(render_math(rewrite_macros(escape_math_specials(expression))))
        cursor = end + len(MATH_DELIM)

    return "".join(parts)


def format_description(raw: str) -> str:
    """
    Format a plain text section.

    >>> format_description("")
    ''
    >>> format_description("a < b").startswith('<span class="cf-statement">')
    True
    """
    if not raw:
        return ""
    body = _format_inline(unescape_entities(raw))
    return f'<span class="cf-statement">{body}</span>' if body else ""


def format_markup(raw_html: str) -> str:
    """Format an HTML fragment: math inside text nodes is rendered, tags are kept."""
    if not raw_html or not raw_html.strip():
        return ""

    soup = BeautifulSoup(raw_html, "html.parser")
    for node in list(soup.find_all(string=True)):
        if isinstance(node, Comment) or not isinstance(node, NavigableString):
            continue
        if node.parent is not None and node.parent.name in ("script", "style"):
            continue
        if MATH_DELIM not in node:
            continue
        fragment = BeautifulSoup(_format_inline(str(node), line_breaks=False), "html.parser")
        if fragment.contents:
            node.replace_with(*list(fragment.contents))
        else:
            node.extract()

    return f'<div class="cf-statement">{soup.decode()}</div>'


def _marker_pattern(marker: str) -> re.Pattern:
    return re.compile(rf"^[ \t]*{marker}[ \t]*(?:\n|$)", re.I | re.M)


def format_examples(raw: str) -> str:
    """
    Rebuild the sample tests from their flattened text.

    The text alternates between an ``input`` and an ``output`` marker line; each
    marker becomes a bold label and the data between markers is escaped with
    its line breaks kept.
    """
    if not raw:
        return ""

    patterns = [_marker_pattern(marker) for marker in _EXAMPLE_MARKERS]
    cursor = 0
    expected = 0
    parts: List[str] = []

    while cursor <= len(raw):
        match = patterns[expected].search(raw, cursor)
        if match is None:
            parts.append(escape_with_breaks(raw[cursor:].strip("\n")))
            break

        between = raw[cursor:match.start()].strip("\n")
        if between:
            parts.append(escape_with_breaks(between) + "<br/>")
        parts.append(f"<strong>{_EXAMPLE_MARKERS[expected].capitalize()}</strong><br/>")
        cursor = match.end()
        expected ^= 1

    body = "".join(parts)
    return f'<div class="cf-examples">{body}</div>' if body else ""
