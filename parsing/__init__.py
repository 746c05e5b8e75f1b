# parsing/__init__.py
"""Helpers for pulling structured payloads out of LLM replies."""

from __future__ import annotations

import json
import re
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


class ParseError(ValueError):
    """The reply did not contain the expected JSON payload."""


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the first JSON object found in ``text``.

    Tries the raw text, then fenced blocks, then the outermost ``{...}`` span.
    """
    if not text or not text.strip():
        raise ParseError("Empty response")

    candidates = [text.strip()]
    candidates.extend(m.group(1) for m in _FENCE_RE.finditer(text))
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    logger.warning("No JSON object in response.", snippet=text[:200])
    raise ParseError("Response did not contain a JSON object")


def parse_model(text: str, model: type[ModelT]) -> ModelT:
    """Extract a JSON object from ``text`` and validate it as ``model``."""
    data = extract_json_object(text)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Invalid {model.__name__} payload: {exc}") from exc


def coerce_str_list(value: Any) -> list[str]:
    """Normalize a list of strings or ``{"text": ...}`` items from a reply."""
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if isinstance(item, dict):
            item = next(
                (item[k] for k in ("text", "topic", "question", "heading", "term") if k in item),
                None,
            )
        if isinstance(item, str) and item.strip():
            items.append(item.strip())
    return items
