"""Central package for DraftLoop data models."""

from .pipeline_models import (
    ContentType,
    DegradationRecord,
    Draft,
    GenerationRequest,
    ProgressEvent,
    ProgressStatus,
    QualityScoreSet,
    ReasonCode,
    RevisionAction,
    RevisionDecision,
    RevisionRound,
)
from .stage_models import (
    AgentBaseModel,
    Citation,
    CompetitorSnippet,
    ContentBrief,
    QAResult,
    ResearchResult,
    StructureReport,
    StructureResult,
)

__all__ = [
    "ContentType",
    "DegradationRecord",
    "Draft",
    "GenerationRequest",
    "ProgressEvent",
    "ProgressStatus",
    "QualityScoreSet",
    "ReasonCode",
    "RevisionAction",
    "RevisionDecision",
    "RevisionRound",
    "AgentBaseModel",
    "Citation",
    "CompetitorSnippet",
    "ContentBrief",
    "QAResult",
    "ResearchResult",
    "StructureReport",
    "StructureResult",
]
