# models/pipeline_models.py
"""Core data model shared by the orchestrator and its collaborators."""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)

from core.abort import AbortToken
from core.errors import InvalidRequestError


class ContentType(str, Enum):
    BLOG_POST = "blog_post"
    ARTICLE = "article"
    SOCIAL_MEDIA = "social_media"
    LANDING_PAGE = "landing_page"


class ReasonCode(str, Enum):
    """Terminal classification of a pipeline run."""

    QUALITY_MET = "quality-met"
    BUDGET_EXHAUSTED = "budget-exhausted"
    CANCELLED = "cancelled"
    FATAL_ERROR = "fatal-error"


class RevisionAction(str, Enum):
    STOP = "stop"
    REVISE = "revise"


class ProgressStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ERROR = "error"


class GenerationRequest(BaseModel):
    """Immutable input for one pipeline run."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    topic: str
    keywords: tuple[str, ...]
    content_type: ContentType = ContentType.BLOG_POST
    tone: str | None = None
    word_count: int | None = Field(default=None, gt=0)
    competitor_urls: tuple[str, ...] = ()
    user_id: str | None = None
    abort_token: AbortToken = Field(default_factory=AbortToken, exclude=True)

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("topic must not be blank")
        return value.strip()

    @field_validator("keywords")
    @classmethod
    def _keywords_present(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        cleaned = tuple(k.strip() for k in value if isinstance(k, str) and k.strip())
        if not cleaned:
            raise ValueError("at least one non-blank keyword is required")
        return cleaned

    @property
    def primary_keyword(self) -> str:
        return self.keywords[0]

    @property
    def secondary_keywords(self) -> tuple[str, ...]:
        return self.keywords[1:]

    @classmethod
    def parse(cls, data: GenerationRequest | Mapping[str, Any]) -> GenerationRequest:
        """Validate ``data`` into a request, raising :class:`InvalidRequestError`."""
        if isinstance(data, GenerationRequest):
            return data
        if not isinstance(data, Mapping):
            raise InvalidRequestError(
                f"Expected a GenerationRequest or mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(dict(data))
        except ValidationError as exc:
            raise InvalidRequestError(
                "Malformed generation request",
                details={"errors": exc.errors(include_url=False)},
            ) from exc


class Draft(BaseModel):
    """One version of the generated text. Never mutated in place."""

    model_config = ConfigDict(frozen=True)

    content: str
    round: int = Field(default=0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def word_count(self) -> int:
        return len(self.content.split())


class QualityScoreSet(BaseModel):
    """Named metric scores for one round plus the weighted overall score."""

    model_config = ConfigDict(frozen=True)

    metrics: dict[str, float] = Field(default_factory=dict)
    overall: float = 0.0
    degraded: tuple[str, ...] = ()

    @field_validator("metrics")
    @classmethod
    def _metrics_in_range(cls, value: dict[str, float]) -> dict[str, float]:
        for name, score in value.items():
            if not math.isfinite(score) or not 0.0 <= score <= 100.0:
                raise ValueError(f"score for '{name}' must be within [0, 100]")
        return value

    @field_validator("overall")
    @classmethod
    def _overall_in_range(cls, value: float) -> float:
        if not math.isfinite(value) or not 0.0 <= value <= 100.0:
            raise ValueError("overall score must be within [0, 100]")
        return value

    def get(self, metric: str) -> float | None:
        """Return the score for ``metric``; ``overall`` maps to the aggregate."""
        if metric == "overall":
            return self.overall
        return self.metrics.get(metric)

    def as_dict(self) -> dict[str, float]:
        return {**self.metrics, "overall": self.overall}


class RevisionDecision(BaseModel):
    """Outcome of the revision controller for one round."""

    model_config = ConfigDict(frozen=True)

    action: RevisionAction
    reason: ReasonCode | None = None
    failing_metrics: tuple[str, ...] = ()

    @property
    def should_revise(self) -> bool:
        return self.action is RevisionAction.REVISE


class RevisionRound(BaseModel):
    """A scored draft and the instructions harvested for it."""

    model_config = ConfigDict(frozen=True)

    round: int = Field(ge=0)
    draft: Draft
    scores: QualityScoreSet
    instructions: tuple[str, ...] = ()
    decision: RevisionDecision | None = None


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    phase: str
    status: ProgressStatus
    message: str
    details: str | None = None
    sequence: int = 0


class DegradationRecord(BaseModel):
    """Audit entry for a degradable stage failure that was replaced by a fallback."""

    model_config = ConfigDict(frozen=True)

    stage: str
    error_type: str
    message: str
    fallback: Any = None
    round: int | None = None
    recorded_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
