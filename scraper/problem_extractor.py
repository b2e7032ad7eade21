"""
Problem Extractor

Scrapes a Codeforces problem page into a ``ScrapedProblemStatement``.

The page is loaded with JavaScript disabled so that formulas stay in their raw
``$$$...$$$`` form. The immediate children of ``.problem-statement`` are then
read by position:

    0 header (title, time limit, memory limit)
    1 statement body          (kept as markup)
    2 input specification
    3 output specification
    4 sample tests            (optional)
    5 note                    (optional, kept as markup)
"""

import logging
import re
from typing import Callable, Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from formatting.statement_formatter import format_description, format_examples, format_markup
from scraper.base_scraper import BaseScraper
from scraper.models import ScrapedProblemStatement, StatementField
from utils.error_handler import ScrapeStructureError
from utils.url_parser import parse_problem_url, question_url

logger = logging.getLogger(__name__)

PROBLEM_SELECTOR = ".problem-statement"

METADATA_INDEX = 0
STATEMENT_INDEX = 1
INPUT_INDEX = 2
OUTPUT_INDEX = 3
EXAMPLES_INDEX = 4
NOTE_INDEX = 5

MIN_SECTIONS = OUTPUT_INDEX + 1
RICH_SECTIONS = (STATEMENT_INDEX, NOTE_INDEX)

TIME_LIMIT_LABEL = "time limit per test"
MEMORY_LIMIT_LABEL = "memory limit per test"

RICH_SECTION_NOISE = ".MathJax, .MathJax_Preview, .section-title"
MATHJAX_SOURCE = 'script[type^="math/tex"]'

BLOCK_TAGS = frozenset([
    "address", "article", "aside", "blockquote", "center", "dd", "div", "dl", "dt",
    "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2", "h3", "h4",
    "h5", "h6", "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "tbody", "thead", "tfoot", "tr", "ul",
])
SKIPPED_TAGS = frozenset(["script", "style", "template", "noscript"])

SECTION_RENDERERS: Dict[str, Callable[[str], str]] = {
    "title": format_description,
    "statement": format_markup,
    "input_statement": format_description,
    "output_statement": format_description,
    "examples": format_examples,
    "note": format_markup,
}

_COPY_ARTIFACT = re.compile(r'^([ \t]*(?:input|output)[ \t]*)\n[ \t]*copy[ \t]*$', re.I | re.M)
_INPUT_LABEL = re.compile(r'^\s*Input[ \t]*(?:\n|$)')
_OUTPUT_LABEL = re.compile(r'^\s*Output[ \t]*(?:\n|$)')
_EXAMPLES_LABEL = re.compile(r'^\s*Examples?[ \t]*\n')
_NOTE_LABEL = re.compile(r'^\s*Note[ \t]*\n')
_BLANK_RUNS = re.compile(r'\n{2,}')


def inner_text(element: Tag) -> str:
    """
    Visible text of ``element`` with block elements and ``<br>`` on their own
    lines, roughly what a browser's ``innerText`` returns.
    """
    parts: List[str] = []

    def walk(node: Tag, preformatted: bool) -> None:
        for child in node.children:
            if isinstance(child, NavigableString):
                if isinstance(child, PreformattedString):
                    continue
                text = str(child)
                parts.append(text if preformatted else re.sub(r'\s+', ' ', text))
                continue
            if not isinstance(child, Tag) or child.name in SKIPPED_TAGS:
                continue
            if child.name == "br":
                parts.append("\n")
                continue
            block = child.name in BLOCK_TAGS
            if block:
                parts.append("\n")
            walk(child, preformatted or child.name == "pre")
            if block:
                parts.append("\n")

    walk(element, element.name == "pre")
    return BaseScraper.clean_text("".join(parts))


def _replace_index_spans(section: Tag) -> None:
    for span in section.select(".upper-index"):
        span.replace_with(NavigableString(f"$$$^{{{span.get_text()}}}$$$"))
    for span in section.select(".lower-index"):
        span.replace_with(NavigableString(f"$$$_{{{span.get_text()}}}$$$"))


def _mark_images(section: Tag) -> None:
    for img in section.find_all("img"):
        classes = list(img.get("class") or [])
        if "bg-white" not in classes:
            classes.append("bg-white")
        img["class"] = classes


def _rich_markup(section: Tag) -> str:
    # Rendered MathJax keeps its TeX source in a script tag
    for script in section.select(MATHJAX_SOURCE):
        script.replace_with(NavigableString(f"$$$ {script.get_text().strip()} $$$"))
    for noise in section.select(RICH_SECTION_NOISE):
        noise.decompose()
    return section.decode_contents()


def process_children(container: Tag) -> List[str]:
    """Turn every immediate child of the statement container into a string."""
    sections = []
    for index, child in enumerate(c for c in container.children if isinstance(c, Tag)):
        _replace_index_spans(child)
        _mark_images(child)
        if index in RICH_SECTIONS:
            sections.append(_rich_markup(child))
        else:
            sections.append(inner_text(child))
    return sections


def _limit_value(lines: List[str], label: str) -> str:
    for position, line in enumerate(lines):
        if label in line.lower():
            value = re.sub(re.escape(label), "", line, flags=re.I).strip()
            if not value and position + 1 < len(lines):
                value = lines[position + 1].strip()
            return value
    return ""


def _normalize(value: str) -> str:
    return _BLANK_RUNS.sub("\n", value.replace('\r\n', '\n')).strip()


def _optional_field(sections: List[str], index: int, label: re.Pattern,
                    renderer: Callable[[str], str]) -> Optional[StatementField]:
    if index >= len(sections):
        return None
    value = _normalize(label.sub("", sections[index], count=1))
    return StatementField(value, renderer) if value else None


def build_statement(sections: List[str], url: Optional[str] = None) -> ScrapedProblemStatement:
    """
    Destructure the section strings into a statement.

    Raises:
        ScrapeStructureError: If fewer than four sections or no title were found
    """
    if len(sections) < MIN_SECTIONS:
        raise ScrapeStructureError(
            f"Unexpected DOM structure: got {len(sections)} elements instead of at least {MIN_SECTIONS}",
            url=url, found_sections=len(sections),
        )

    metadata_lines = [line.strip() for line in sections[METADATA_INDEX].split("\n") if line.strip()]
    if not metadata_lines:
        raise ScrapeStructureError("Metadata element not found", url=url, found_sections=len(sections))

    if EXAMPLES_INDEX < len(sections):
        sections[EXAMPLES_INDEX] = _COPY_ARTIFACT.sub(r'\1', sections[EXAMPLES_INDEX])

    renderers = SECTION_RENDERERS
    return ScrapedProblemStatement(
        title=StatementField(_normalize(metadata_lines[0]), renderers["title"]),
        time_limit=_limit_value(metadata_lines, TIME_LIMIT_LABEL),
        memory_limit=_limit_value(metadata_lines, MEMORY_LIMIT_LABEL),
        statement=StatementField(_normalize(sections[STATEMENT_INDEX]), renderers["statement"]),
        input_statement=StatementField(
            _normalize(_INPUT_LABEL.sub("", sections[INPUT_INDEX], count=1)), renderers["input_statement"]
        ),
        output_statement=StatementField(
            _normalize(_OUTPUT_LABEL.sub("", sections[OUTPUT_INDEX], count=1)), renderers["output_statement"]
        ),
        examples=_optional_field(sections, EXAMPLES_INDEX, _EXAMPLES_LABEL, renderers["examples"]),
        note=_optional_field(sections, NOTE_INDEX, _NOTE_LABEL, renderers["note"]),
    )


class ProblemExtractor(BaseScraper):
    """Scrapes problem statements through a browser session with JavaScript off."""

    def parse_statement(self, soup: BeautifulSoup, url: Optional[str] = None) -> ScrapedProblemStatement:
        container = soup.select_one(PROBLEM_SELECTOR)
        if container is None:
            raise ScrapeStructureError(f"Problem statement not found on {url}", url=url, found_sections=0)
        return build_statement(process_children(container), url=url)

    def extract_problem(self, url: str) -> ScrapedProblemStatement:
        """
        Scrape the problem at ``url``.

        Raises:
            InvalidUrlError: If ``url`` is not a problem URL (no browser is started)
            ScrapeTimeoutError: If the statement never appeared
            ScrapeStructureError: If the statement has fewer than four sections
        """
        key = parse_problem_url(url)
        url = url.strip()
        logger.info(f"Extracting problem {key.question_id} from {url}")

        soup = self.get_page_content(url, wait_for=PROBLEM_SELECTOR, javascript_enabled=False)
        try:
            statement = self.parse_statement(soup, url)
        except ScrapeStructureError as e:
            logger.error(f"Structure error for {key.question_id}: {e}")
            raise

        logger.info(f"Extracted {key.question_id}: {statement.title.raw}")
        return statement

    def extract_question(self, question_id: str) -> ScrapedProblemStatement:
        """Scrape a problem by its ``{contest_id}_{index}`` key."""
        return self.extract_problem(question_url(question_id))
