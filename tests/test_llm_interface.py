import json

import httpx
import pytest

import core.llm_interface as llm_interface
from config import DraftLoopSettings
from core.llm_interface import (
    LLMService,
    LLMServiceError,
    clean_model_response,
    count_tokens,
    truncate_text_by_tokens,
)


def make_service(handler, **overrides):
    cfg = DraftLoopSettings(
        OPENAI_API_BASE="http://llm.test/v1",
        LLM_RETRY_ATTEMPTS=2,
        LLM_RETRY_DELAY_SECONDS=0.0,
        **overrides,
    )
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LLMService(cfg, client=client)


def completion(content, tokens=7):
    return httpx.Response(
        200,
        json={
            "choices": [{"message": {"content": content}}],
            "usage": {"completion_tokens": tokens},
        },
    )


@pytest.mark.asyncio
async def test_complete_returns_cleaned_text():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return completion("<think>plan</think>Here is the article: # Title")

    service = make_service(handler)
    response = await service.complete("writer", "Write it", temperature=0.5)

    assert response.text == "# Title"
    assert response.model == "writer"
    assert requests[0]["temperature"] == 0.5
    assert requests[0]["messages"] == [{"role": "user", "content": "Write it"}]
    assert "max_tokens" in requests[0]
    assert service.completion_tokens == 7
    await service.aclose()


@pytest.mark.asyncio
async def test_retries_server_errors_then_succeeds():
    statuses = iter([503, 200])

    def handler(request):
        status = next(statuses)
        if status != 200:
            return httpx.Response(status, json={"error": "busy"})
        return completion("ok")

    service = make_service(handler)
    response = await service.complete("m", "prompt")

    assert response.text == "ok"
    assert service.request_count == 2


@pytest.mark.asyncio
async def test_client_error_is_not_retried_and_falls_back():
    models = []

    def handler(request):
        model = json.loads(request.content)["model"]
        models.append(model)
        if model == "primary":
            return httpx.Response(400, json={"error": "bad model"})
        return completion("from fallback")

    service = make_service(handler, FALLBACK_GENERATION_MODEL="backup")
    response = await service.complete("primary", "prompt", allow_fallback=True)

    assert models == ["primary", "backup"]
    assert response.model == "backup"


@pytest.mark.asyncio
async def test_exhausted_retries_raise_service_error():
    def handler(request):
        return completion("   ")

    service = make_service(handler)
    with pytest.raises(LLMServiceError) as excinfo:
        await service.complete("m", "prompt")
    assert excinfo.value.code == "llm-service"
    assert service.request_count == 2


@pytest.mark.asyncio
async def test_empty_prompt_is_rejected():
    service = make_service(lambda request: completion("unused"))
    with pytest.raises(LLMServiceError):
        await service.complete("m", "  ")
    assert service.request_count == 0


def test_clean_model_response_strips_preamble_and_signoff():
    text = (
        "Sure, here is the draft: # Guide\n\nBody text.\n\n\n\n"
        "Let me know if you need anything else!"
    )
    assert clean_model_response(text) == "# Guide\n\nBody text."


def test_clean_model_response_keeps_code_fences():
    text = '```json\n{"seo": 1}\n```'
    assert clean_model_response(text) == text


def test_token_helpers_fall_back_to_character_heuristic(monkeypatch):
    monkeypatch.setattr(llm_interface, "_get_tokenizer", lambda model_name: None)
    assert count_tokens("a" * 40, "m") == 10
    truncated = truncate_text_by_tokens("b" * 100, "m", 10, truncation_marker="...")
    assert truncated == "b" * 37 + "..."
    assert truncate_text_by_tokens("short", "m", 10) == "short"
