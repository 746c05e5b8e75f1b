# processing/score_aggregator.py
"""Combine per-metric scores into one weighted overall score."""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from models import QualityScoreSet

logger = structlog.get_logger(__name__)


def normalize_score(value: Any) -> float | None:
    """Coerce a raw stage score to a float in ``[0, 100]``.

    Booleans, non-numeric values, NaN and infinities are treated as missing.
    """
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return min(100.0, max(0.0, number))


def aggregate(
    weights: Mapping[str, float], scores: Mapping[str, float | None]
) -> float:
    """Return the weighted average of the metrics present in ``scores``.

    Only metrics that carry a weight and a usable score contribute, and the
    result is divided by the sum of the contributing weights. Returns ``0.0``
    when nothing contributes.
    """
    weighted_sum = 0.0
    weight_sum = 0.0
    for metric, weight in weights.items():
        if weight <= 0:
            continue
        score = normalize_score(scores.get(metric))
        if score is None:
            continue
        weighted_sum += score * weight
        weight_sum += weight
    if weight_sum == 0:
        return 0.0
    return min(100.0, max(0.0, weighted_sum / weight_sum))


class ScoreAggregator:
    """Build :class:`QualityScoreSet` values from raw stage scores."""

    def __init__(
        self,
        weights: Mapping[str, float],
        fallback_scores: Mapping[str, float | None] | None = None,
    ) -> None:
        self.weights = dict(weights)
        self.fallback_scores = dict(fallback_scores or {})

    def fallback_for(self, metric: str) -> float | None:
        """Neutral score used when the stage producing ``metric`` degrades."""
        return normalize_score(self.fallback_scores.get(metric))

    def build(
        self,
        raw_scores: Mapping[str, Any],
        degraded: Iterable[str] = (),
    ) -> QualityScoreSet:
        metrics: dict[str, float] = {}
        for metric, raw in raw_scores.items():
            score = normalize_score(raw)
            if score is None:
                if raw is not None:
                    logger.warning(
                        "Discarding unusable score.", metric=metric, raw=repr(raw)
                    )
                continue
            metrics[metric] = score
        overall = aggregate(self.weights, metrics)
        missing = [m for m in self.weights if m not in metrics]
        if missing:
            logger.debug(
                "Weights renormalized over present metrics.",
                missing=missing,
                overall=round(overall, 2),
            )
        return QualityScoreSet(
            metrics=metrics, overall=overall, degraded=tuple(dict.fromkeys(degraded))
        )
