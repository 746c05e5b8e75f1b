# agents/llm_agent.py
"""Shared plumbing for the LLM-backed reference agents."""

from __future__ import annotations

from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from core.errors import StageFailure
from core.llm_interface import LLMService
from parsing import ParseError, parse_model

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class LLMAgent:
    """Base class holding the injected service and the model to call."""

    stage = "agent"

    def __init__(self, llm: LLMService, model_name: str) -> None:
        self.llm = llm
        self.model_name = model_name
        logger.info(
            f"{self.__class__.__name__} initialized with model: {self.model_name}"
        )

    async def _ask_text(
        self, prompt: str, temperature: float, **kwargs: Any
    ) -> str:
        response = await self.llm.complete(
            self.model_name, prompt, temperature=temperature, **kwargs
        )
        return response.text

    async def _ask_json(
        self,
        prompt: str,
        model: type[ModelT],
        temperature: float,
        **kwargs: Any,
    ) -> ModelT:
        """Call the model and validate its JSON reply as ``model``.

        Raises:
            StageFailure: The reply could not be parsed.
        """
        text = await self._ask_text(prompt, temperature, **kwargs)
        try:
            return parse_model(text, model)
        except ParseError as exc:
            raise StageFailure(
                f"{self.__class__.__name__} returned an unusable reply: {exc}",
                stage=self.stage,
            ) from exc
