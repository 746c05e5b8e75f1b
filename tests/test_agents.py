import json

import pytest

from agents.brief_agent import ContentBriefAgent
from agents.qa_agent import QualityReviewAgent
from agents.research_agent import ResearchAgent
from agents.scoring_agent import BriefFitScorer, LLMJudgeScorer
from agents.writer_agent import ContentWriterAgent
from core.abort import AbortToken
from core.errors import PipelineCancelled, StageFailure
from core.llm_interface import LLMResponse
from models import (
    Citation,
    ContentBrief,
    Draft,
    GenerationRequest,
    ResearchResult,
)


class ScriptedLLM:
    """Stands in for LLMService and records every prompt."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, model_name, prompt, **kwargs):
        self.calls.append({"model": model_name, "prompt": prompt, **kwargs})
        reply = self.replies.pop(0)
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return LLMResponse(text=reply, model=model_name)


RESEARCH = ResearchResult(
    summary="Hot composting reaches 55C within days.",
    citations=[Citation(url="https://extension.example.edu/compost", title="Extension")],
)


@pytest.mark.asyncio
async def test_research_agent_parses_fenced_json():
    reply = "```json\n" + json.dumps(
        {
            "summary": "Compost needs air and water.",
            "citations": [{"url": "https://a.example"}],
            "search_intent": "informational",
        }
    ) + "\n```"
    llm = ScriptedLLM(reply)
    agent = ResearchAgent(llm, model_name="research-model")

    result = await agent.research(
        AbortToken(), "Home Composting", "home composting", ["https://c.example"]
    )

    assert result.summary == "Compost needs air and water."
    assert result.citations[0].url == "https://a.example"
    assert "https://c.example" in llm.calls[0]["prompt"]
    assert llm.calls[0]["model"] == "research-model"


@pytest.mark.asyncio
async def test_research_agent_rejects_empty_summary():
    agent = ResearchAgent(ScriptedLLM({"summary": "  "}), model_name="m")
    with pytest.raises(StageFailure):
        await agent.research(AbortToken(), "t", "k", [])


@pytest.mark.asyncio
async def test_agents_turn_unparseable_replies_into_stage_failures():
    agent = ResearchAgent(ScriptedLLM("I could not find anything."), model_name="m")
    with pytest.raises(StageFailure) as excinfo:
        await agent.research(AbortToken(), "t", "k", [])
    assert excinfo.value.stage == "research"


@pytest.mark.asyncio
async def test_agent_checks_token_before_calling_model():
    llm = ScriptedLLM({"summary": "x"})
    token = AbortToken()
    token.abort()
    with pytest.raises(PipelineCancelled):
        await ResearchAgent(llm, model_name="m").research(token, "t", "k", [])
    assert llm.calls == []


@pytest.mark.asyncio
async def test_brief_agent_normalizes_lists():
    llm = ScriptedLLM(
        {
            "topics": [{"topic": "moisture"}, "aeration", ""],
            "questions": "Is compost safe?",
            "key_terms": None,
            "recommended_word_count": 1500,
        }
    )
    brief = await ContentBriefAgent(llm, model_name="m").brief(
        AbortToken(), "home composting", []
    )

    assert brief.topics == ["moisture", "aeration"]
    assert brief.questions == ["Is compost safe?"]
    assert brief.key_terms == []
    assert brief.recommended_word_count == 1500


@pytest.mark.asyncio
async def test_writer_agent_initial_draft_prompt():
    llm = ScriptedLLM("# Home Composting\n\nBody.\n")
    request = GenerationRequest(
        topic="Home Composting", keywords=["home composting", "compost bin"]
    )

    draft = await ContentWriterAgent(llm, model_name="writer").write(
        AbortToken(), request, RESEARCH, None, None, [], 0
    )

    assert draft == Draft(content="# Home Composting\n\nBody.", round=0)
    prompt = llm.calls[0]["prompt"]
    assert "Secondary keywords: compost bin" in prompt
    assert "- Extension: https://extension.example.edu/compost" in prompt
    assert "Content brief" not in prompt
    assert llm.calls[0]["allow_fallback"] is True


@pytest.mark.asyncio
async def test_writer_agent_revision_prompt_carries_instructions():
    llm = ScriptedLLM("# Revised\n\nBetter body.")
    request = GenerationRequest(topic="Home Composting", keywords=["home composting"])
    brief = ContentBrief(topics=["moisture"], recommended_word_count=1200)
    previous = Draft(content="# Old\n\nOld body.", round=0)

    draft = await ContentWriterAgent(llm, model_name="writer").write(
        AbortToken(), request, RESEARCH, brief, previous, ["Add a FAQ"], 1
    )

    assert draft.round == 1
    prompt = llm.calls[0]["prompt"]
    assert "- Add a FAQ" in prompt
    assert "Old body." in prompt
    assert "about 1200 words" in prompt
    assert "1. moisture" in prompt


@pytest.mark.asyncio
async def test_writer_agent_rejects_blank_reply():
    llm = ScriptedLLM("   ")
    request = GenerationRequest(topic="t", keywords=["k"])
    with pytest.raises(StageFailure):
        await ContentWriterAgent(llm, model_name="w").write(
            AbortToken(), request, RESEARCH, None, None, [], 0
        )


@pytest.mark.asyncio
async def test_judge_scorer_returns_requested_metrics_only():
    llm = ScriptedLLM('Scores: {"seo": 72, "other": 10}')
    scorer = LLMJudgeScorer(llm, model_name="judge")

    scores = await scorer.score(AbortToken(), Draft(content="text"), "compost")

    assert scores == {"seo": 72}
    assert '"seo": 0' in llm.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_qa_agent_scores_and_instructions():
    llm = ScriptedLLM(
        {
            "eeat": 64,
            "depth": "70",
            "instructions": ["Add first-hand experience", {"text": "Cite sources"}],
            "strengths": ["clear"],
        }
    )
    result = await QualityReviewAgent(llm, model_name="qa").review(
        AbortToken(), Draft(content="text"), RESEARCH, []
    )

    assert result.scores == {"eeat": 64.0, "depth": 70.0}
    assert result.instructions == ["Add first-hand experience", "Cite sources"]
    assert result.strengths == ["clear"]
    assert result.weaknesses == []


@pytest.mark.asyncio
async def test_brief_fit_scorer_share_of_covered_items():
    brief = ContentBrief(
        topics=["moisture", "turning frequency"],
        questions=["Is compost safe?", "Does compost smell?"],
    )
    scorer = BriefFitScorer(brief, threshold=85)

    scores = await scorer.score(
        AbortToken(),
        Draft(content="Moisture matters. Is compost safe? Yes."),
        "compost",
    )

    assert scores == {"brief-fit": 50.0}


@pytest.mark.asyncio
async def test_brief_fit_scorer_without_items_reports_nothing():
    scorer = BriefFitScorer(ContentBrief(key_terms=["humus"]))
    assert await scorer.score(AbortToken(), Draft(content="x"), "k") == {}
