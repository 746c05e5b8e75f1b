# processing/structure_analysis.py
"""Markdown heading analysis and the structural (answer-engine) score."""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from models import StructureReport

logger = structlog.get_logger(__name__)

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
QUESTION_WORDS = (
    "what",
    "how",
    "why",
    "when",
    "where",
    "who",
    "which",
    "can",
    "is",
    "are",
    "does",
    "do",
    "should",
    "will",
)
DIRECT_ANSWER_MAX_WORDS = 60
META_TITLE_MAX_CHARS = 60
META_DESCRIPTION_MAX_CHARS = 160

STRUCTURAL_FALLBACK_SCORE = 50.0


@dataclass
class Heading:
    level: int
    text: str
    line_index: int


def extract_headings(text: str) -> list[Heading]:
    """Return ATX headings in ``text``, ignoring fenced code blocks."""
    headings: list[Heading] = []
    in_fence = False
    for idx, line in enumerate(text.splitlines()):
        stripped = line.strip()
        if stripped.startswith("```") or stripped.startswith("~~~"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = HEADING_RE.match(stripped)
        if match:
            headings.append(Heading(len(match.group(1)), match.group(2), idx))
    return headings


def is_question_heading(text: str) -> bool:
    cleaned = text.strip().lower()
    if cleaned.endswith("?"):
        return True
    first_word = cleaned.split(" ", 1)[0] if cleaned else ""
    return first_word in QUESTION_WORDS


def _hierarchy_valid(headings: list[Heading]) -> bool:
    if not headings or headings[0].level != 1:
        return False
    if sum(1 for h in headings if h.level == 1) != 1:
        return False
    previous = headings[0].level
    for heading in headings[1:]:
        if heading.level > previous + 1:
            return False
        previous = heading.level
    return True


def _paragraph_after(lines: list[str], line_index: int) -> str | None:
    """First paragraph below ``line_index`` or ``None`` if a heading comes first."""
    paragraph: list[str] = []
    for line in lines[line_index + 1 :]:
        stripped = line.strip()
        if not stripped:
            if paragraph:
                break
            continue
        if HEADING_RE.match(stripped):
            break
        paragraph.append(stripped)
    return " ".join(paragraph) if paragraph else None


def _direct_answers_follow(text: str, question_headings: list[Heading]) -> bool:
    if not question_headings:
        return False
    lines = text.splitlines()
    for heading in question_headings:
        paragraph = _paragraph_after(lines, heading.line_index)
        if paragraph is None:
            return False
        if len(paragraph.split()) > DIRECT_ANSWER_MAX_WORDS:
            return False
    return True


def analyze_structure(text: str) -> StructureReport:
    """Build a :class:`StructureReport` for a markdown draft."""
    headings = extract_headings(text)
    h1_count = sum(1 for h in headings if h.level == 1)
    question_h2 = [h for h in headings if h.level == 2 and is_question_heading(h.text)]
    return StructureReport(
        h1_present=h1_count == 1,
        heading_hierarchy_valid=_hierarchy_valid(headings),
        h2_question_heading=bool(question_h2),
        direct_answer_present=_direct_answers_follow(text, question_h2),
        heading_count=len(headings),
    )


def structural_score(report: StructureReport | None) -> float:
    """Score ``report`` on a 0-100 scale.

    Base 40, +25 direct answers, +15 valid hierarchy, +10 single H1,
    +10 question-style H2. ``None`` yields the neutral fallback.
    """
    if report is None:
        return STRUCTURAL_FALLBACK_SCORE
    score = 40.0
    if report.direct_answer_present:
        score += 25
    if report.heading_hierarchy_valid:
        score += 15
    if report.h1_present:
        score += 10
    if report.h2_question_heading:
        score += 10
    return min(100.0, score)


def ensure_h1(text: str, title: str) -> str:
    """Prepend ``# title`` when the draft has no H1 at all."""
    if any(h.level == 1 for h in extract_headings(text)):
        return text
    logger.debug("Draft has no H1; adding one.", title=title)
    return f"# {title.strip()}\n\n{text.lstrip()}"


def first_heading_text(text: str, level: int = 1) -> str | None:
    for heading in extract_headings(text):
        if heading.level == level:
            return heading.text
    return None


def extract_direct_answer(text: str, max_words: int = 50) -> str:
    """First prose paragraph of ``text``, truncated to ``max_words`` words."""
    for block in re.split(r"\n\s*\n", text):
        stripped = block.strip()
        if not stripped or HEADING_RE.match(stripped.splitlines()[0].strip()):
            continue
        if stripped.startswith(("-", "*", "|", ">", "```")):
            continue
        words = " ".join(stripped.split()).split(" ")
        answer = " ".join(words[:max_words])
        return answer if len(words) <= max_words else f"{answer}..."
    return ""


def build_meta_title(title: str | None, primary_keyword: str) -> str:
    base = (title or "").strip() or f"{primary_keyword.strip().title()} - Complete Guide"
    if len(base) <= META_TITLE_MAX_CHARS:
        return base
    return base[: META_TITLE_MAX_CHARS - 3].rstrip() + "..."


def build_meta_description(direct_answer: str, primary_keyword: str) -> str:
    text = direct_answer.strip() or (
        f"Learn everything about {primary_keyword}. Discover key insights, "
        "best practices, and actionable tips. Read more."
    )
    if len(text) <= META_DESCRIPTION_MAX_CHARS:
        return text
    return text[: META_DESCRIPTION_MAX_CHARS - 3].rstrip() + "..."
