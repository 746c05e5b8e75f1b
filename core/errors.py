# core/errors.py
"""Exception hierarchy for the content pipeline."""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for every error raised by the pipeline core."""

    code = "pipeline-error"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.stage:
            data["stage"] = self.stage
        if self.details:
            data["details"] = self.details
        return data


class InvalidRequestError(PipelineError):
    """The generation request cannot be processed."""

    code = "invalid-request"


class StageFailure(PipelineError):
    """A stage client raised or returned an unusable payload."""

    code = "stage-failure"


class StageTimeoutError(StageFailure):
    """A stage client did not finish within its deadline."""

    code = "stage-timeout"


class FatalStageError(PipelineError):
    """A stage the pipeline cannot continue without has failed."""

    code = "fatal-error"

    def __init__(self, stage: str, cause: BaseException) -> None:
        super().__init__(
            f"Stage '{stage}' failed: {cause}",
            stage=stage,
            details={"cause": type(cause).__name__},
        )
        self.__cause__ = cause


class MetadataPersistenceError(PipelineError):
    """Writing the metadata document for a content record failed."""

    code = "metadata-persistence"


class PipelineCancelled(PipelineError):
    """The run was cancelled through its abort token."""

    code = "cancelled"
