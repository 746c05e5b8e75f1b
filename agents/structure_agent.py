# agents/structure_agent.py
"""Local markdown structure optimizer. Makes no LLM calls."""

from __future__ import annotations

import structlog

from core.abort import AbortToken
from models import Draft, StructureResult
from processing.instructions import generate_slug
from processing.structure_analysis import (
    analyze_structure,
    build_meta_description,
    build_meta_title,
    ensure_h1,
    extract_direct_answer,
    first_heading_text,
)

logger = structlog.get_logger(__name__)


class StructureAgent:
    """Add a missing H1, report heading structure and derive meta data."""

    async def optimize(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> StructureResult:
        token.check("structure optimization")
        default_title = f"{primary_keyword.strip().title()}: A Complete Guide"
        content = ensure_h1(draft.content, default_title)
        optimized = (
            draft
            if content == draft.content
            else Draft(content=content, round=draft.round)
        )
        report = analyze_structure(optimized.content)
        title = first_heading_text(optimized.content) or default_title
        direct_answer = extract_direct_answer(optimized.content)
        result = StructureResult(
            optimized_draft=optimized,
            report=report,
            meta_title=build_meta_title(title, primary_keyword),
            meta_description=build_meta_description(direct_answer, primary_keyword),
            slug=generate_slug(title),
            direct_answer=direct_answer,
        )
        logger.info(
            "Structure optimized.",
            h1=report.h1_present,
            question_h2=report.h2_question_heading,
            hierarchy_valid=report.heading_hierarchy_valid,
        )
        return result
