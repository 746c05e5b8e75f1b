# processing/instructions.py
"""Turn QA findings and brief gaps into revision instructions for the writer."""

from __future__ import annotations

import re
from collections.abc import Iterable

import structlog
from rapidfuzz import fuzz

from models import ContentBrief

logger = structlog.get_logger(__name__)

_BRIEF_TOPIC_LIMIT = 15
_BRIEF_QUESTION_LIMIT = 10
_BRIEF_HEADING_LIMIT = 8
_BRIEF_TERM_LIMIT = 20
_SLUG_MAX_LENGTH = 100


def _normalize_for_matching(text: str) -> str:
    text = text.lower().strip()
    text = re.sub(r"[^\w\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def is_covered(item: str, draft_text: str, threshold: float) -> bool:
    """Return ``True`` if ``item`` appears in ``draft_text`` closely enough."""
    needle = _normalize_for_matching(item)
    if not needle:
        return True
    haystack = _normalize_for_matching(draft_text)
    if needle in haystack:
        return True
    return fuzz.partial_ratio(needle, haystack) >= threshold


def missing_brief_items(
    brief: ContentBrief, draft_text: str, threshold: float
) -> tuple[list[str], list[str]]:
    """Return brief topics and questions the draft does not yet cover."""
    topics = [t for t in brief.topics if not is_covered(t, draft_text, threshold)]
    questions = [
        q for q in brief.questions if not is_covered(q, draft_text, threshold)
    ]
    return topics, questions


def brief_instructions(
    brief: ContentBrief | None,
    draft_text: str,
    *,
    max_topics: int,
    max_questions: int,
    threshold: float,
) -> list[str]:
    """Instructions asking the writer to close the gaps against ``brief``."""
    if brief is None or brief.is_empty:
        return []
    topics, questions = missing_brief_items(brief, draft_text, threshold)
    instructions: list[str] = []
    if topics and max_topics > 0:
        instructions.append(
            f"Cover these missing topics: {', '.join(topics[:max_topics])}"
        )
    if questions and max_questions > 0:
        instructions.append(
            f"Answer these user questions: {'; '.join(questions[:max_questions])}"
        )
    return instructions


def harvest_instructions(
    *sources: Iterable[str],
    limit: int,
    similarity: float,
) -> list[str]:
    """Merge instruction lists in order, dropping near-duplicates, then cap.

    Two instructions are duplicates when their token-set similarity reaches
    ``similarity`` (0-100). The first occurrence wins.
    """
    kept: list[str] = []
    normalized_kept: list[str] = []
    dropped = 0
    for source in sources:
        for instruction in source:
            if not isinstance(instruction, str):
                continue
            cleaned = instruction.strip()
            normalized = _normalize_for_matching(cleaned)
            if not normalized:
                continue
            if any(
                fuzz.token_set_ratio(normalized, other) >= similarity
                for other in normalized_kept
            ):
                dropped += 1
                continue
            kept.append(cleaned)
            normalized_kept.append(normalized)
    if dropped:
        logger.debug("Dropped near-duplicate instructions.", count=dropped)
    if limit >= 0 and len(kept) > limit:
        logger.info(
            "Instruction list capped.", available=len(kept), limit=limit
        )
        kept = kept[:limit]
    return kept


def format_content_brief(brief: ContentBrief | None) -> str:
    """Render ``brief`` as plain text for the writer prompt."""
    if brief is None or brief.is_empty:
        return ""

    lines: list[str] = []
    if brief.search_intent:
        lines.append(f"Search Intent: {brief.search_intent.upper()}")
    if brief.topics:
        lines.append("\nKey Topics to Cover (in order of importance):")
        for idx, topic in enumerate(brief.topics[:_BRIEF_TOPIC_LIMIT], start=1):
            lines.append(f"  {idx}. {topic}")
    if brief.questions:
        lines.append("\nUser Questions to Answer:")
        lines.extend(f"  - {q}" for q in brief.questions[:_BRIEF_QUESTION_LIMIT])
    if brief.headings:
        lines.append("\nRecommended Headings:")
        lines.extend(f"  - {h}" for h in brief.headings[:_BRIEF_HEADING_LIMIT])
    if brief.key_terms:
        terms = ", ".join(brief.key_terms[:_BRIEF_TERM_LIMIT])
        lines.append(f"\nImportant Terms to Include: {terms}")
    if brief.recommended_word_count:
        lines.append(f"\nRecommended Length: ~{brief.recommended_word_count} words")
    return "\n".join(lines).strip()


def generate_slug(text: str) -> str:
    """URL slug: lowercase, runs of non-alphanumerics become ``-``."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower())
    slug = slug.strip("-")
    return slug[:_SLUG_MAX_LENGTH].rstrip("-")
