# tests/fakes.py
"""In-memory stage clients for driving the orchestrator in tests."""

from __future__ import annotations

import asyncio
import copy
from collections.abc import Callable, Sequence
from typing import Any

from config import PipelineConfig
from core.abort import AbortToken
from models import (
    Citation,
    CompetitorSnippet,
    ContentBrief,
    Draft,
    GenerationRequest,
    QAResult,
    ResearchResult,
    StructureReport,
    StructureResult,
)


def make_config(**overrides: Any) -> PipelineConfig:
    values: dict[str, Any] = {
        "max_rounds": 2,
        "thresholds": {"overall": 75.0},
        "weights": {"seo": 0.5, "eeat": 0.5},
        "fallback_scores": {"structural": 50.0, "brief-fit": 70.0, "seo": None},
        "max_instructions": 10,
        "max_brief_topics": 5,
        "max_brief_questions": 3,
        "instruction_similarity": 90.0,
        "brief_coverage_threshold": 85.0,
        "stage_timeouts": {},
        "default_timeout": 5.0,
    }
    values.update(overrides)
    return PipelineConfig(**values)


def make_request(**overrides: Any) -> GenerationRequest:
    data: dict[str, Any] = {
        "topic": "Home Composting",
        "keywords": ["home composting", "compost bin"],
    }
    data.update(overrides)
    return GenerationRequest(**data)


class FakeResearch:
    def __init__(
        self,
        result: ResearchResult | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.result = result or ResearchResult(
            summary="Composting turns kitchen scraps into soil.",
            citations=[Citation(url="https://example.org/compost", title="Guide")],
            competitor_snippets=[
                CompetitorSnippet(url="https://competitor.example/compost")
            ],
        )
        self.error = error
        self.delay = delay
        self.calls: list[tuple[str, str, tuple[str, ...]]] = []

    async def research(
        self,
        token: AbortToken,
        topic: str,
        primary_keyword: str,
        competitor_urls: Sequence[str],
    ) -> ResearchResult:
        self.calls.append((topic, primary_keyword, tuple(competitor_urls)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class FakeBrief:
    def __init__(
        self, brief: ContentBrief | None = None, error: Exception | None = None
    ) -> None:
        self.result = brief or ContentBrief(
            topics=["carbon to nitrogen ratio"],
            questions=["How long does compost take?"],
        )
        self.error = error
        self.calls = 0

    async def brief(
        self,
        token: AbortToken,
        primary_keyword: str,
        competitor_urls: Sequence[str],
    ) -> ContentBrief:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


class FakeWriter:
    """Returns ``# Draft <round>`` style content and records every call.

    ``errors`` maps a round to the exception raised for it. ``on_round`` maps a
    round to a hook run with the token before the draft is returned.
    """

    def __init__(
        self,
        contents: dict[int, str] | None = None,
        errors: dict[int, Exception] | None = None,
        on_round: dict[int, Callable[[AbortToken], None]] | None = None,
    ) -> None:
        self.contents = contents or {}
        self.errors = errors or {}
        self.on_round = on_round or {}
        self.calls: list[dict[str, Any]] = []

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
        self.calls.append(
            {
                "round": round,
                "request": request,
                "brief": brief,
                "previous": previous_draft,
                "instructions": list(instructions),
            }
        )
        if round in self.errors:
            raise self.errors[round]
        if round in self.on_round:
            self.on_round[round](token)
        content = self.contents.get(
            round, f"# Home Composting\n\nDraft for round {round} about compost."
        )
        return Draft(content=content, round=round)


class FakeStructure:
    def __init__(
        self,
        report: StructureReport | None = None,
        error: Exception | None = None,
    ) -> None:
        self.report = report or StructureReport(
            h1_present=True,
            heading_hierarchy_valid=True,
            h2_question_heading=False,
            direct_answer_present=False,
            heading_count=1,
        )
        self.error = error
        self.calls = 0

    async def optimize(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> StructureResult:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return StructureResult(
            optimized_draft=draft, report=self.report, slug="home-composting"
        )


class FakeScorer:
    """Scripted scores per call. The last entry repeats once the list runs out."""

    def __init__(
        self,
        name: str = "seo-judge",
        metrics: tuple[str, ...] = ("seo",),
        scores: Sequence[dict[str, Any]] = ({"seo": 80.0},),
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.metrics = metrics
        self.scores = list(scores)
        self.error = error
        self.calls = 0

    async def score(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> dict[str, float]:
        index = min(self.calls, len(self.scores) - 1)
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.scores[index])


class FakeQA:
    metrics = ("eeat",)

    def __init__(
        self,
        scores: Sequence[dict[str, Any]] = ({"eeat": 80.0},),
        instructions: Sequence[str] = (),
        error: Exception | None = None,
    ) -> None:
        self.scores = list(scores)
        self.instructions = list(instructions)
        self.error = error
        self.calls = 0

    async def review(
        self,
        token: AbortToken,
        draft: Draft,
        research: ResearchResult,
        competitors: Sequence[CompetitorSnippet],
    ) -> QAResult:
        index = min(self.calls, len(self.scores) - 1)
        self.calls += 1
        if self.error is not None:
            raise self.error
        return QAResult(
            scores=dict(self.scores[index]), instructions=list(self.instructions)
        )


class InMemoryMetadataStore:
    """Dict-backed store. ``fail_on`` lists 1-based upsert calls that raise."""

    def __init__(
        self,
        fail_on: Sequence[int] = (),
        fail_load: bool = False,
        existing: dict[str, Any] | None = None,
    ) -> None:
        self.documents: dict[str, Any] = dict(existing or {})
        self.fail_on = set(fail_on)
        self.fail_load = fail_load
        self.upserts: list[dict[str, Any]] = []

    async def load(self, content_id: str) -> Any:
        if self.fail_load:
            raise ConnectionError("metadata store offline")
        return copy.deepcopy(self.documents.get(content_id))

    async def upsert(self, content_id: str, document: dict[str, Any]) -> None:
        call_number = len(self.upserts) + 1
        self.upserts.append(copy.deepcopy(document))
        if call_number in self.fail_on:
            raise ConnectionError("metadata store offline")
        self.documents[content_id] = copy.deepcopy(document)
