# agents/qa_agent.py
"""E-E-A-T quality review producing scores and revision instructions."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

from config import settings
from core.abort import AbortToken
from core.llm_interface import LLMService
from models import CompetitorSnippet, Draft, QAResult, ResearchResult
from parsing import coerce_str_list
from prompt_renderer import render_prompt

from .llm_agent import LLMAgent

logger = structlog.get_logger(__name__)

QA_METRICS = ("eeat", "depth", "factual")


class _ReviewReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    eeat: Any = None
    depth: Any = None
    factual: Any = None
    instructions: Any = None
    strengths: Any = None
    weaknesses: Any = None


class QualityReviewAgent(LLMAgent):
    stage = "qa"
    metrics = QA_METRICS

    def __init__(self, llm: LLMService, model_name: str | None = None):
        super().__init__(llm, model_name or settings.QA_MODEL)

    async def review(
        self,
        token: AbortToken,
        draft: Draft,
        research: ResearchResult,
        competitors: Sequence[CompetitorSnippet],
    ) -> QAResult:
        token.check("qa review")
        prompt = render_prompt(
            "qa_agent/eeat_review.j2",
            {
                "enable_no_think": True,
                "draft": draft.content,
                "citations": [c.url for c in research.citations],
                "competitors": [c.model_dump(exclude_none=True) for c in competitors],
            },
        )
        reply = await self._ask_json(
            prompt, _ReviewReply, temperature=settings.TEMPERATURE_EVALUATION
        )
        scores = {
            metric: getattr(reply, metric)
            for metric in QA_METRICS
            if getattr(reply, metric) is not None
        }
        result = QAResult(
            scores=scores,
            instructions=coerce_str_list(reply.instructions),
            strengths=coerce_str_list(reply.strengths),
            weaknesses=coerce_str_list(reply.weaknesses),
        )
        logger.info(
            "QA review complete.",
            scores=result.scores,
            instructions=len(result.instructions),
        )
        return result
