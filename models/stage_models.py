# models/stage_models.py
"""Payloads returned by the stage clients."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .pipeline_models import Draft


class AgentBaseModel(BaseModel):
    """Base model supporting mapping style access."""

    model_config = ConfigDict(from_attributes=True, extra="allow")

    def __getitem__(self, item: str) -> Any:  # pragma: no cover - convenience
        return getattr(self, item)

    def get(
        self, item: str, default: Any = None
    ) -> Any:  # pragma: no cover - convenience
        return getattr(self, item, default)


class Citation(AgentBaseModel):
    url: str
    title: str | None = None


class CompetitorSnippet(AgentBaseModel):
    url: str
    title: str | None = None
    snippet: str | None = None
    word_count: int | None = None
    sections: list[str] = Field(default_factory=list)


class ResearchResult(AgentBaseModel):
    """Research summary plus the only sources the writer may cite."""

    summary: str
    citations: list[Citation] = Field(default_factory=list)
    competitor_snippets: list[CompetitorSnippet] = Field(default_factory=list)
    search_intent: str | None = None


class ContentBrief(AgentBaseModel):
    """SERP-style content brief used to steer drafting and revision."""

    topics: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list)
    recommended_word_count: int | None = None
    headings: list[str] = Field(default_factory=list)
    key_terms: list[str] = Field(default_factory=list)
    search_intent: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.topics or self.questions or self.headings or self.key_terms)


class StructureReport(AgentBaseModel):
    h1_present: bool = False
    heading_hierarchy_valid: bool = False
    h2_question_heading: bool = False
    direct_answer_present: bool = False
    heading_count: int = 0


class StructureResult(AgentBaseModel):
    optimized_draft: Draft
    report: StructureReport
    meta_title: str | None = None
    meta_description: str | None = None
    slug: str | None = None
    direct_answer: str | None = None


class QAResult(AgentBaseModel):
    """Quality review scores with the instructions the writer should follow."""

    scores: dict[str, float] = Field(default_factory=dict)
    instructions: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
