import math

import pytest

from processing.score_aggregator import ScoreAggregator, aggregate, normalize_score


def test_aggregate_renormalizes_over_present_metrics():
    weights = {"a": 0.5, "b": 0.3, "c": 0.2}
    # c is missing, so the result is (80*0.5 + 60*0.3) / 0.8.
    assert aggregate(weights, {"a": 80, "b": 60}) == pytest.approx(72.5)


def test_aggregate_with_all_metrics_present():
    weights = {"a": 0.5, "b": 0.5}
    assert aggregate(weights, {"a": 90, "b": 70}) == pytest.approx(80.0)


def test_aggregate_empty_inputs_return_zero():
    assert aggregate({}, {"a": 50}) == 0.0
    assert aggregate({"a": 1.0}, {}) == 0.0


def test_aggregate_ignores_unweighted_and_zero_weight_metrics():
    weights = {"a": 1.0, "b": 0.0}
    assert aggregate(weights, {"a": 40, "b": 100, "extra": 100}) == pytest.approx(
        40.0
    )


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf, "high", True, None])
def test_unusable_scores_are_treated_as_missing(bad):
    weights = {"a": 0.5, "b": 0.5}
    assert aggregate(weights, {"a": 60, "b": bad}) == pytest.approx(60.0)


def test_normalize_score_clamps_and_coerces():
    assert normalize_score(150) == 100.0
    assert normalize_score(-5) == 0.0
    assert normalize_score("42.5") == 42.5
    assert normalize_score(False) is None


def test_build_drops_unusable_and_keeps_degraded_order():
    aggregator = ScoreAggregator({"seo": 1.0, "eeat": 1.0})
    scores = aggregator.build(
        {"seo": 70, "eeat": math.nan, "structural": 120},
        degraded=["eeat", "seo", "eeat"],
    )
    assert scores.metrics == {"seo": 70.0, "structural": 100.0}
    assert scores.overall == pytest.approx(70.0)
    assert scores.degraded == ("eeat", "seo")
    assert scores.get("overall") == scores.overall
    assert scores.get("eeat") is None


def test_fallback_for_unknown_or_null_metric_is_none():
    aggregator = ScoreAggregator({}, {"structural": 50, "seo": None})
    assert aggregator.fallback_for("structural") == 50.0
    assert aggregator.fallback_for("seo") is None
    assert aggregator.fallback_for("depth") is None
