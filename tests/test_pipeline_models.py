import math

import pytest
from pydantic import ValidationError

from core.errors import InvalidRequestError
from models import (
    ContentType,
    DegradationRecord,
    Draft,
    GenerationRequest,
    QualityScoreSet,
)


def test_request_parse_from_mapping():
    request = GenerationRequest.parse(
        {
            "topic": "  Home Composting ",
            "keywords": ["home composting", " ", "compost bin"],
            "content_type": "article",
            "competitor_urls": ["https://a.example"],
        }
    )
    assert request.topic == "Home Composting"
    assert request.primary_keyword == "home composting"
    assert request.secondary_keywords == ("compost bin",)
    assert request.content_type is ContentType.ARTICLE
    assert request.competitor_urls == ("https://a.example",)
    assert not request.abort_token.aborted


def test_request_is_immutable():
    request = GenerationRequest(topic="t", keywords=["k"])
    with pytest.raises(ValidationError):
        request.topic = "other"


@pytest.mark.parametrize(
    "data",
    [
        {"topic": "", "keywords": ["k"]},
        {"topic": "t", "keywords": []},
        {"topic": "t", "keywords": ["  "]},
        {"topic": "t", "keywords": ["k"], "word_count": 0},
        {"keywords": ["k"]},
    ],
)
def test_invalid_requests(data):
    with pytest.raises(InvalidRequestError) as excinfo:
        GenerationRequest.parse(data)
    assert excinfo.value.code == "invalid-request"
    assert excinfo.value.details["errors"]


def test_parse_rejects_non_mapping():
    with pytest.raises(InvalidRequestError):
        GenerationRequest.parse(["topic"])


def test_abort_token_is_not_serialized():
    request = GenerationRequest(topic="t", keywords=["k"])
    assert "abort_token" not in request.model_dump()


def test_draft_word_count():
    draft = Draft(content="# Title\n\nthree more words")
    assert draft.word_count == 5
    assert draft.model_dump()["word_count"] == 5


@pytest.mark.parametrize("bad", [-1.0, 100.5, math.nan])
def test_score_set_range(bad):
    with pytest.raises(ValidationError):
        QualityScoreSet(metrics={"seo": bad}, overall=50)
    with pytest.raises(ValidationError):
        QualityScoreSet(overall=bad)


def test_score_set_as_dict():
    scores = QualityScoreSet(metrics={"seo": 70.0}, overall=70.0)
    assert scores.as_dict() == {"seo": 70.0, "overall": 70.0}


def test_degradation_record_is_timestamped():
    record = DegradationRecord(stage="qa", error_type="RuntimeError", message="x")
    assert record.recorded_at
    assert record.round is None
