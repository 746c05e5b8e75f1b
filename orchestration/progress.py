# orchestration/progress.py
"""Ordered progress events pushed to an optional caller supplied observer."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable

import structlog

from models import ProgressEvent, ProgressStatus

logger = structlog.get_logger(__name__)

PHASE_RESEARCH = "research"
PHASE_BRIEF = "brief"
PHASE_WRITING = "writing"
PHASE_STRUCTURE = "structure"
PHASE_SCORING = "scoring"
PHASE_QA = "qa"
PHASE_DECIDE = "decide"
PHASE_REVISION = "revision"
PHASE_FINALIZE = "finalize"

CANONICAL_PHASES: tuple[str, ...] = (
    PHASE_RESEARCH,
    PHASE_BRIEF,
    PHASE_WRITING,
    PHASE_STRUCTURE,
    PHASE_SCORING,
    PHASE_QA,
    PHASE_DECIDE,
    PHASE_REVISION,
    PHASE_FINALIZE,
)
_PHASE_RANK = {phase: idx for idx, phase in enumerate(CANONICAL_PHASES)}

ProgressObserver = Callable[[ProgressEvent], Awaitable[None] | None]
ProgressErrorHandler = Callable[[BaseException, ProgressEvent], Awaitable[None] | None]


def is_valid_transition(previous: str | None, phase: str) -> bool:
    """Phases move forward through the canonical order.

    The only backward step is ``revision -> scoring`` which starts a new round.
    ``finalize`` may follow any phase.
    """
    if phase not in _PHASE_RANK:
        return False
    if previous is None or previous == phase or phase == PHASE_FINALIZE:
        return True
    if previous == PHASE_REVISION and phase == PHASE_SCORING:
        return True
    return _PHASE_RANK[phase] > _PHASE_RANK[previous]


async def _maybe_await(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


class ProgressReporter:
    """Emit :class:`ProgressEvent` values without ever failing the pipeline."""

    def __init__(
        self,
        observer: ProgressObserver | None = None,
        on_error: ProgressErrorHandler | None = None,
    ) -> None:
        self.observer = observer
        self.on_error = on_error
        self.history: list[ProgressEvent] = []
        self._sequence = 0
        self._last_phase: str | None = None

    @property
    def last_phase(self) -> str | None:
        return self._last_phase

    async def emit(
        self,
        phase: str,
        status: ProgressStatus,
        message: str,
        details: str | None = None,
    ) -> ProgressEvent:
        if not is_valid_transition(self._last_phase, phase):
            logger.warning(
                "Progress phase out of canonical order.",
                previous=self._last_phase,
                phase=phase,
            )
        self._sequence += 1
        event = ProgressEvent(
            phase=phase,
            status=status,
            message=message,
            details=details,
            sequence=self._sequence,
        )
        self._last_phase = phase
        self.history.append(event)
        logger.debug(
            "Progress.",
            phase=phase,
            status=status.value,
            message=message,
            sequence=event.sequence,
        )

        if self.observer is None:
            return event
        try:
            await _maybe_await(self.observer(event))
        except Exception as exc:
            logger.warning(
                "Progress observer failed; continuing.",
                phase=phase,
                status=status.value,
                error=str(exc),
                exc_info=True,
            )
            await self._report_observer_error(exc, event)
        return event

    async def _report_observer_error(
        self, exc: BaseException, event: ProgressEvent
    ) -> None:
        if self.on_error is None:
            return
        try:
            await _maybe_await(self.on_error(exc, event))
        except Exception as handler_exc:
            logger.error(
                "Progress error handler failed.",
                error=str(handler_exc),
                exc_info=True,
            )

    async def started(
        self, phase: str, message: str, details: str | None = None
    ) -> ProgressEvent:
        return await self.emit(phase, ProgressStatus.IN_PROGRESS, message, details)

    async def completed(
        self, phase: str, message: str, details: str | None = None
    ) -> ProgressEvent:
        return await self.emit(phase, ProgressStatus.COMPLETED, message, details)

    async def skipped(self, phase: str, what: str, details: str | None = None) -> ProgressEvent:
        """Degraded phases still complete, with a "Skipped ..." message."""
        return await self.emit(
            phase, ProgressStatus.COMPLETED, f"Skipped {what}", details
        )

    async def failed(
        self, phase: str, message: str, details: str | None = None
    ) -> ProgressEvent:
        return await self.emit(phase, ProgressStatus.ERROR, message, details)
