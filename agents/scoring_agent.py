# agents/scoring_agent.py
"""Scorers producing named quality metrics for a draft."""

from __future__ import annotations

import structlog

from config import settings
from core.abort import AbortToken
from core.llm_interface import LLMService
from models import ContentBrief, Draft
from parsing import extract_json_object
from processing.instructions import missing_brief_items
from prompt_renderer import render_prompt

from .llm_agent import LLMAgent

logger = structlog.get_logger(__name__)


class LLMJudgeScorer(LLMAgent):
    """Content analysis scored by a judge model. Produces ``seo``."""

    stage = "scorer"

    def __init__(
        self,
        llm: LLMService,
        model_name: str | None = None,
        metrics: tuple[str, ...] = ("seo",),
        name: str = "content-analysis",
    ):
        super().__init__(llm, model_name or settings.SCORING_MODEL)
        self.name = name
        self.metrics = metrics

    async def score(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> dict[str, float]:
        token.check(f"{self.name} scoring")
        prompt = render_prompt(
            "scoring_agent/seo_judge.j2",
            {
                "enable_no_think": True,
                "primary_keyword": primary_keyword,
                "metrics": list(self.metrics),
                "draft": draft.content,
                "word_count": draft.word_count,
            },
        )
        text = await self._ask_text(prompt, settings.TEMPERATURE_EVALUATION)
        data = extract_json_object(text)
        scores = {m: data[m] for m in self.metrics if m in data}
        logger.info("Judge scores.", scorer=self.name, scores=scores)
        return scores


class BriefFitScorer:
    """Share of brief topics and questions the draft covers. Produces ``brief-fit``."""

    name = "brief-fit"
    metrics = ("brief-fit",)

    def __init__(
        self,
        brief: ContentBrief,
        threshold: float = settings.BRIEF_COVERAGE_MATCH_THRESHOLD,
    ):
        self.brief = brief
        self.threshold = threshold

    async def score(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> dict[str, float]:
        token.check("brief-fit scoring")
        total = len(self.brief.topics) + len(self.brief.questions)
        if total == 0:
            return {}
        topics, questions = missing_brief_items(
            self.brief, draft.content, self.threshold
        )
        covered = total - len(topics) - len(questions)
        return {"brief-fit": round(100.0 * covered / total, 2)}
