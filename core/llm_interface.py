# core/llm_interface.py
"""
OpenAI-compatible chat completion client used by the reference stage agents.
Includes token counting helpers, retry with backoff, an optional fallback
model and response cleanup.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

from __future__ import annotations

import asyncio
import functools
import random
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
import tiktoken

from config import DraftLoopSettings, settings
from core.errors import StageFailure

logger = structlog.get_logger(__name__)


class LLMServiceError(StageFailure):
    """Every attempt against the primary and fallback model failed."""

    code = "llm-service"


def _completion_token_param(api_base: str) -> str:
    """Return the token count parameter expected by the provider."""
    if "api.openai.com" in api_base or "api.anthropic.com" in api_base:
        return "max_completion_tokens"
    return "max_tokens"


@functools.lru_cache(maxsize=settings.TOKENIZER_CACHE_SIZE)
def _get_tokenizer(model_name: str) -> tiktoken.Encoding | None:
    """Model specific tiktoken encoder, then the default encoding, else ``None``."""
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        logger.debug(
            "No direct tiktoken encoding; using default.",
            model=model_name,
            encoding=settings.TIKTOKEN_DEFAULT_ENCODING,
        )
    try:
        return tiktoken.get_encoding(settings.TIKTOKEN_DEFAULT_ENCODING)
    except (KeyError, ValueError):
        logger.error(
            "Default tiktoken encoding unavailable; using character heuristic.",
            encoding=settings.TIKTOKEN_DEFAULT_ENCODING,
        )
        return None
    except Exception as exc:
        # Encodings are fetched on first use and may be unreachable offline.
        logger.error(
            "Unexpected error loading tokenizer; using character heuristic.",
            model=model_name,
            error=str(exc),
            exc_info=True,
        )
        return None


def count_tokens(text: str, model_name: str) -> int:
    if not text:
        return 0
    encoder = _get_tokenizer(model_name)
    if encoder is None:
        return int(len(text) / settings.FALLBACK_CHARS_PER_TOKEN)
    return len(encoder.encode(text, allowed_special="all"))


def truncate_text_by_tokens(
    text: str,
    model_name: str,
    max_tokens: int,
    truncation_marker: str = "\n... (truncated)",
) -> str:
    """Cut ``text`` to ``max_tokens`` tokens, appending ``truncation_marker``."""
    if not text:
        return ""

    encoder = _get_tokenizer(model_name)
    if encoder is None:
        max_chars = int(max_tokens * settings.FALLBACK_CHARS_PER_TOKEN)
        if len(text) <= max_chars:
            return text
        return text[: max(0, max_chars - len(truncation_marker))] + truncation_marker

    tokens = encoder.encode(text, allowed_special="all")
    if len(tokens) <= max_tokens:
        return text

    marker = truncation_marker
    keep = max_tokens - len(encoder.encode(marker, allowed_special="all"))
    if keep <= 0:
        keep = max(1, max_tokens)
        marker = ""
    return encoder.decode(tokens[:keep]) + marker


@dataclass
class LLMResponse:
    text: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)


class LLMService:
    """Thin async client for an OpenAI-compatible ``/chat/completions`` endpoint."""

    def __init__(
        self,
        config: DraftLoopSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or settings
        self._client = client or httpx.AsyncClient(timeout=self.config.HTTPX_TIMEOUT)
        self._semaphore = asyncio.Semaphore(self.config.MAX_CONCURRENT_LLM_CALLS)
        self.request_count = 0
        self.completion_tokens = 0
        logger.info(
            "LLMService initialized.",
            api_base=self.config.OPENAI_API_BASE,
            concurrency=self.config.MAX_CONCURRENT_LLM_CALLS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _backoff_delay(self, attempt: int) -> None:
        """Sleep for an exponentially increasing delay with jitter."""
        delay = self.config.LLM_RETRY_DELAY_SECONDS * (2**attempt)
        jitter = random.uniform(0, delay / 2)
        await asyncio.sleep(delay + jitter)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.OPENAI_API_KEY}",
            "Content-Type": "application/json",
        }

    async def _post(self, payload: dict[str, Any]) -> tuple[str, dict[str, int]]:
        response = await self._client.post(
            f"{self.config.OPENAI_API_BASE}/chat/completions",
            json=payload,
            headers=self._headers(),
        )
        response.raise_for_status()
        data = response.json()
        choices = data.get("choices") or []
        if not choices:
            raise ValueError(f"Response from '{payload['model']}' has no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValueError(f"Response from '{payload['model']}' has empty content")
        return content, data.get("usage") or {}

    async def _call_with_retries(
        self, payload: dict[str, Any]
    ) -> tuple[str, dict[str, int]]:
        model_name = payload["model"]
        attempts = max(1, self.config.LLM_RETRY_ATTEMPTS)
        last_exc: Exception | None = None
        for attempt in range(attempts):
            try:
                self.request_count += 1
                return await self._post(payload)
            except httpx.HTTPStatusError as exc:
                last_exc = exc
                status = exc.response.status_code
                logger.warning(
                    "LLM call failed.",
                    model=model_name,
                    attempt=attempt + 1,
                    status=status,
                )
                if 400 <= status < 500 and status != 429:
                    break
            except (httpx.RequestError, ValueError) as exc:
                last_exc = exc
                logger.warning(
                    "LLM call failed.",
                    model=model_name,
                    attempt=attempt + 1,
                    error=str(exc),
                )
            if attempt < attempts - 1:
                await self._backoff_delay(attempt)
        if last_exc is None:
            raise LLMServiceError(f"No attempt was made against '{model_name}'")
        raise last_exc

    async def complete(
        self,
        model_name: str,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        allow_fallback: bool = False,
        auto_clean_response: bool = True,
    ) -> LLMResponse:
        """Return the model's reply to ``prompt``.

        Raises:
            LLMServiceError: The primary model, and the fallback when allowed,
                failed on every attempt.
        """
        if not prompt or not prompt.strip():
            raise LLMServiceError("Empty prompt", details={"model": model_name})

        candidates = [model_name]
        fallback = self.config.FALLBACK_GENERATION_MODEL
        if allow_fallback and fallback and fallback != model_name:
            candidates.append(fallback)

        token_param = _completion_token_param(self.config.OPENAI_API_BASE)
        last_exc: Exception | None = None
        async with self._semaphore:
            for candidate in candidates:
                payload: dict[str, Any] = {
                    "model": candidate,
                    "messages": [{"role": "user", "content": prompt}],
                    "temperature": (
                        temperature
                        if temperature is not None
                        else self.config.TEMPERATURE_DEFAULT
                    ),
                    "top_p": self.config.LLM_TOP_P,
                    token_param: max_tokens or self.config.MAX_GENERATION_TOKENS,
                }
                logger.debug(
                    "Calling LLM.",
                    model=candidate,
                    prompt_tokens=count_tokens(prompt, candidate),
                )
                try:
                    text, usage = await self._call_with_retries(payload)
                except Exception as exc:
                    last_exc = exc
                    logger.error("LLM model exhausted retries.", model=candidate)
                    continue
                self.completion_tokens += int(usage.get("completion_tokens", 0) or 0)
                if auto_clean_response:
                    text = clean_model_response(text)
                return LLMResponse(text=text, model=candidate, usage=usage)

        raise LLMServiceError(
            f"LLM call to '{model_name}' failed: {last_exc}",
            details={"models": candidates},
        ) from last_exc


_THINK_TAGS = ("think", "thought", "thinking", "reasoning", "analysis", "no_think")
_PREAMBLE_PATTERNS = (
    r"^\s*(Okay,\s*)?(Sure,\s*)?(Here's|Here is)\s+(the|your)\s+[\w\s]+?:\s*",
    r"^\s*Certainly! Here is the text:\s*",
    r"^\s*(?:Output|Result|Response|Answer)\s*:\s*",
)
_SIGNOFF_PATTERNS = (
    r"\s*Let me know if you (need|have) any(thing else| other questions| further revisions| adjustments)\b.*?\.?[^\w\n]*$",
    r"\s*I hope this (meets your expectations|helps|is what you were looking for)\b.*?\.?[^\w\n]*$",
)


def clean_model_response(text: str) -> str:
    """Strip reasoning tags, chat preambles and sign-offs from a reply.

    Fenced blocks are kept so JSON and markdown code survive.
    """
    if not isinstance(text, str):
        return ""
    cleaned = text
    for tag in _THINK_TAGS:
        cleaned = re.sub(
            rf"<\s*{tag}\s*>.*?<\s*/\s*{tag}\s*>",
            "",
            cleaned,
            flags=re.DOTALL | re.IGNORECASE,
        )
        cleaned = re.sub(rf"<\s*/?\s*{tag}\s*/?\s*>", "", cleaned, flags=re.IGNORECASE)
    cleaned = cleaned.strip()
    for pattern in _PREAMBLE_PATTERNS:
        cleaned = re.sub(pattern, "", cleaned, count=1, flags=re.IGNORECASE).strip()
    for pattern in _SIGNOFF_PATTERNS:
        cleaned = re.sub(
            pattern, "", cleaned, count=1, flags=re.IGNORECASE | re.MULTILINE
        ).strip()
    return re.sub(r"\n{3,}", "\n\n", cleaned)
