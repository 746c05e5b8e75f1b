# orchestration/models.py
"""Shared dataclasses for orchestration services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from core.errors import FatalStageError, PipelineCancelled, PipelineError
from models import (
    ContentBrief,
    DegradationRecord,
    Draft,
    QualityScoreSet,
    ReasonCode,
    ResearchResult,
    RevisionRound,
    StructureResult,
)

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """The stage failed and ``fallback`` stands in for its result."""

    fallback: T
    cause: BaseException


@dataclass(frozen=True)
class Fatal:
    cause: BaseException


StageOutcome = Ok[T] | Degraded[T] | Fatal


@dataclass
class FinalResult:
    """Everything a caller gets back from one pipeline run."""

    reason: ReasonCode
    draft: Draft | None
    best_scores: QualityScoreSet | None
    rounds: list[RevisionRound]
    metadata: dict[str, Any]
    content_id: str | None = None
    degradations: list[DegradationRecord] = field(default_factory=list)
    error: PipelineError | None = None

    @property
    def succeeded(self) -> bool:
        return self.reason in (ReasonCode.QUALITY_MET, ReasonCode.BUDGET_EXHAUSTED)

    @property
    def degraded(self) -> bool:
        return bool(self.degradations)

    def raise_for_reason(self) -> FinalResult:
        """Raise the run's error for cancelled and fatal results, else return self."""
        if self.reason is ReasonCode.CANCELLED:
            if isinstance(self.error, PipelineCancelled):
                raise self.error
            raise PipelineCancelled("Operation was aborted")
        if self.reason is ReasonCode.FATAL_ERROR:
            if isinstance(self.error, PipelineError):
                raise self.error
            raise FatalStageError("pipeline", RuntimeError("unknown failure"))
        return self


@dataclass
class _RunState:
    """Mutable state of one run. Never shared between runs."""

    content_id: str
    research: ResearchResult | None = None
    brief: ContentBrief | None = None
    brief_degraded: bool = False
    structure: StructureResult | None = None
    structure_degraded: bool = False
    structural_score: float | None = None
    current_draft: Draft | None = None
    rounds: list[RevisionRound] = field(default_factory=list)
    degradations: list[DegradationRecord] = field(default_factory=list)
    best_draft: Draft | None = None
    best_scores: QualityScoreSet | None = None
    writer_calls: int = 0

    def consider(self, draft: Draft, scores: QualityScoreSet) -> bool:
        """Track the best draft seen so far. The earlier draft wins ties."""
        if self.best_scores is None or scores.overall > self.best_scores.overall:
            self.best_draft = draft
            self.best_scores = scores
            return True
        return False
