# agents/protocols.py
"""Interfaces the orchestrator depends on. Concrete agents are swappable."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

from core.abort import AbortToken
from models import (
    CompetitorSnippet,
    ContentBrief,
    Draft,
    GenerationRequest,
    QAResult,
    ResearchResult,
    StructureResult,
)


@runtime_checkable
class ResearchClient(Protocol):
    async def research(
        self,
        token: AbortToken,
        topic: str,
        primary_keyword: str,
        competitor_urls: Sequence[str],
    ) -> ResearchResult: ...


@runtime_checkable
class BriefClient(Protocol):
    async def brief(
        self,
        token: AbortToken,
        primary_keyword: str,
        competitor_urls: Sequence[str],
    ) -> ContentBrief: ...


@runtime_checkable
class WriterClient(Protocol):
    async def write(
        self,
        token: AbortToken,
        request: GenerationRequest,
        research_summary: ResearchResult,
        brief: ContentBrief | None,
        previous_draft: Draft | None,
        instructions: Sequence[str],
        round: int,
    ) -> Draft: ...


@runtime_checkable
class StructuralOptimizerClient(Protocol):
    async def optimize(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> StructureResult: ...


@runtime_checkable
class ScorerClient(Protocol):
    """Produces one or more named metrics for a draft."""

    name: str
    metrics: tuple[str, ...]

    async def score(
        self, token: AbortToken, draft: Draft, primary_keyword: str
    ) -> dict[str, float]: ...


@runtime_checkable
class QAReviewerClient(Protocol):
    metrics: tuple[str, ...]

    async def review(
        self,
        token: AbortToken,
        draft: Draft,
        research: ResearchResult,
        competitors: Sequence[CompetitorSnippet],
    ) -> QAResult: ...


@runtime_checkable
class MetadataStore(Protocol):
    async def load(self, content_id: str) -> Any: ...

    async def upsert(self, content_id: str, document: dict[str, Any]) -> None: ...
