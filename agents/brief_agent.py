# agents/brief_agent.py
"""Agent producing a SERP-style content brief for the primary keyword."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

from config import settings
from core.abort import AbortToken
from core.llm_interface import LLMService
from models import ContentBrief
from parsing import coerce_str_list
from prompt_renderer import render_prompt

from .llm_agent import LLMAgent

logger = structlog.get_logger(__name__)


class _BriefReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    topics: Any = None
    questions: Any = None
    headings: Any = None
    key_terms: Any = None
    recommended_word_count: int | None = None
    search_intent: str | None = None


class ContentBriefAgent(LLMAgent):
    stage = "brief"

    def __init__(self, llm: LLMService, model_name: str | None = None):
        super().__init__(llm, model_name or settings.BRIEF_MODEL)

    async def brief(
        self,
        token: AbortToken,
        primary_keyword: str,
        competitor_urls: Sequence[str],
    ) -> ContentBrief:
        token.check("brief request")
        prompt = render_prompt(
            "brief_agent/content_brief.j2",
            {
                "enable_no_think": True,
                "primary_keyword": primary_keyword,
                "competitor_urls": list(competitor_urls),
            },
        )
        reply = await self._ask_json(
            prompt, _BriefReply, temperature=settings.TEMPERATURE_BRIEF
        )
        brief = ContentBrief(
            topics=coerce_str_list(reply.topics),
            questions=coerce_str_list(reply.questions),
            headings=coerce_str_list(reply.headings),
            key_terms=coerce_str_list(reply.key_terms),
            recommended_word_count=reply.recommended_word_count,
            search_intent=reply.search_intent,
        )
        logger.info(
            "Content brief ready.",
            topics=len(brief.topics),
            questions=len(brief.questions),
        )
        return brief
