# processing/revision_controller.py
"""Decide whether the draft loop stops or revises after a scoring round."""

from __future__ import annotations

from collections.abc import Mapping

import structlog

from models import QualityScoreSet, ReasonCode, RevisionAction, RevisionDecision

logger = structlog.get_logger(__name__)


def failing_metrics(
    scores: QualityScoreSet, thresholds: Mapping[str, float]
) -> list[str]:
    """Return thresholded metrics that scored below their minimum.

    A thresholded metric absent from ``scores`` is skipped.
    """
    failing: list[str] = []
    for metric, minimum in thresholds.items():
        value = scores.get(metric)
        if value is None:
            logger.debug("Threshold metric missing from scores.", metric=metric)
            continue
        if value < minimum:
            failing.append(metric)
    return failing


def decide(
    scores: QualityScoreSet,
    round_index: int,
    max_rounds: int,
    thresholds: Mapping[str, float],
) -> RevisionDecision:
    """Stop when every threshold is met or the round budget is spent."""
    failing = failing_metrics(scores, thresholds)
    if not failing:
        decision = RevisionDecision(
            action=RevisionAction.STOP, reason=ReasonCode.QUALITY_MET
        )
    elif round_index >= max_rounds:
        decision = RevisionDecision(
            action=RevisionAction.STOP,
            reason=ReasonCode.BUDGET_EXHAUSTED,
            failing_metrics=tuple(failing),
        )
    else:
        decision = RevisionDecision(
            action=RevisionAction.REVISE, failing_metrics=tuple(failing)
        )
    logger.info(
        "Revision decision.",
        round=round_index,
        max_rounds=max_rounds,
        action=decision.action.value,
        reason=decision.reason.value if decision.reason else None,
        failing=failing,
    )
    return decision
