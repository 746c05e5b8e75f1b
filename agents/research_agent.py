# agents/research_agent.py
"""Agent that gathers a research summary, citable sources and competitor notes."""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from config import settings
from core.abort import AbortToken
from core.errors import StageFailure
from core.llm_interface import LLMService
from models import ResearchResult
from prompt_renderer import render_prompt

from .llm_agent import LLMAgent

logger = structlog.get_logger(__name__)


class ResearchAgent(LLMAgent):
    stage = "research"

    def __init__(self, llm: LLMService, model_name: str | None = None):
        super().__init__(llm, model_name or settings.RESEARCH_MODEL)

    async def research(
        self,
        token: AbortToken,
        topic: str,
        primary_keyword: str,
        competitor_urls: Sequence[str],
    ) -> ResearchResult:
        token.check("research request")
        prompt = render_prompt(
            "research_agent/research.j2",
            {
                "enable_no_think": True,
                "topic": topic,
                "primary_keyword": primary_keyword,
                "competitor_urls": list(competitor_urls),
            },
        )
        result = await self._ask_json(
            prompt, ResearchResult, temperature=settings.TEMPERATURE_RESEARCH
        )
        if not result.summary.strip():
            raise StageFailure("Research returned an empty summary", stage=self.stage)
        logger.info(
            "Research complete.",
            citations=len(result.citations),
            competitors=len(result.competitor_snippets),
        )
        return result
