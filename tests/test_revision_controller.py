from models import QualityScoreSet, ReasonCode, RevisionAction
from processing.revision_controller import decide, failing_metrics

THRESHOLDS = {"overall": 75.0, "eeat": 70.0}


def scores(overall, **metrics):
    return QualityScoreSet(metrics=metrics, overall=overall)


def test_all_thresholds_met_stops_with_quality_met():
    decision = decide(scores(80, eeat=72), 0, 3, THRESHOLDS)
    assert decision.action is RevisionAction.STOP
    assert decision.reason is ReasonCode.QUALITY_MET
    assert not decision.should_revise
    assert decision.failing_metrics == ()


def test_failing_metric_revises_within_budget():
    decision = decide(scores(80, eeat=60), 1, 3, THRESHOLDS)
    assert decision.should_revise
    assert decision.reason is None
    assert decision.failing_metrics == ("eeat",)


def test_budget_check_overrides_failing_metrics():
    decision = decide(scores(50, eeat=10), 3, 3, THRESHOLDS)
    assert decision.action is RevisionAction.STOP
    assert decision.reason is ReasonCode.BUDGET_EXHAUSTED
    assert decision.failing_metrics == ("overall", "eeat")


def test_quality_met_on_last_round_is_still_quality_met():
    decision = decide(scores(90, eeat=90), 3, 3, THRESHOLDS)
    assert decision.reason is ReasonCode.QUALITY_MET


def test_missing_thresholded_metric_is_skipped():
    assert failing_metrics(scores(80), THRESHOLDS) == []
    assert decide(scores(80), 0, 3, THRESHOLDS).reason is ReasonCode.QUALITY_MET


def test_threshold_equal_to_score_passes():
    assert failing_metrics(scores(75, eeat=70), THRESHOLDS) == []


def test_zero_budget_stops_after_first_round():
    decision = decide(scores(10), 0, 0, THRESHOLDS)
    assert decision.reason is ReasonCode.BUDGET_EXHAUSTED
