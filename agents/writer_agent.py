# agents/writer_agent.py
"""Agent that writes the initial draft and every revision."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from config import settings
from core.abort import AbortToken
from core.errors import StageFailure
from core.llm_interface import LLMService, truncate_text_by_tokens
from models import ContentBrief, Draft, GenerationRequest, ResearchResult
from processing.instructions import format_content_brief
from prompt_renderer import render_prompt

from .llm_agent import LLMAgent

logger = structlog.get_logger(__name__)


class ContentWriterAgent(LLMAgent):
    """Draft or revise long-form content grounded in the research summary.

    Only the research citations are offered as sources.
    """

    stage = "writer"

    def __init__(self, llm: LLMService, model_name: str | None = None):
        super().__init__(llm, model_name or settings.WRITER_MODEL)

    def _research_context(self, research: ResearchResult) -> str:
        return truncate_text_by_tokens(
            research.summary,
            self.model_name,
            settings.MAX_RESEARCH_CONTEXT_TOKENS,
        )

    async def write(
        self,
        token: AbortToken,
        request: GenerationRequest,
        research_summary: ResearchResult,
        brief: ContentBrief | None,
        previous_draft: Draft | None,
        instructions: Sequence[str],
        round: int,
    ) -> Draft:
        token.check(f"writer request (round {round})")
        is_revision = previous_draft is not None
        context = {
            "enable_no_think": True,
            "topic": request.topic,
            "primary_keyword": request.primary_keyword,
            "secondary_keywords": list(request.secondary_keywords),
            "content_type": request.content_type.value.replace("_", " "),
            "tone": request.tone or settings.DEFAULT_TONE,
            "word_count": request.word_count
            or (brief.recommended_word_count if brief else None)
            or settings.DEFAULT_TARGET_WORD_COUNT,
            "research_context": self._research_context(research_summary),
            "citations": [c.model_dump(exclude_none=True) for c in research_summary.citations],
            "content_brief": format_content_brief(brief),
        }
        if is_revision:
            template = "writer_agent/revision.j2"
            context["previous_draft"] = previous_draft.content
            context["instructions"] = list(instructions)
            temperature = settings.TEMPERATURE_REVISION
        else:
            template = "writer_agent/draft.j2"
            temperature = settings.TEMPERATURE_DRAFTING

        logger.info(
            "Writing draft." if not is_revision else "Revising draft.",
            round=round,
            instructions=len(instructions),
        )
        text = await self._ask_text(
            render_prompt(template, context),
            temperature,
            allow_fallback=True,
        )
        if not text.strip():
            raise StageFailure(
                f"Writer returned empty content for round {round}", stage=self.stage
            )
        draft = Draft(content=text.strip(), round=round)
        logger.info("Draft ready.", round=round, word_count=draft.word_count)
        return draft
