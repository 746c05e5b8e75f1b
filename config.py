# config.py
"""Configuration settings for the DraftLoop content generation pipeline.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class DraftLoopSettings(BaseSettings):
    """Full configuration for DraftLoop."""

    # API and Model Configuration
    OPENAI_API_BASE: str = "http://127.0.0.1:8080/v1"
    OPENAI_API_KEY: str = "nope"

    # Base Model Definitions
    LARGE_MODEL: str = "Qwen3-14B"
    MEDIUM_MODEL: str = "Qwen3-8B"
    SMALL_MODEL: str = "Qwen3-4B"

    # Dynamic Model Assignments (set from base models if not specified in env)
    FALLBACK_GENERATION_MODEL: str | None = None
    RESEARCH_MODEL: str | None = None
    BRIEF_MODEL: str | None = None
    WRITER_MODEL: str | None = None
    SCORING_MODEL: str | None = None
    QA_MODEL: str | None = None

    # Temperature Settings
    TEMPERATURE_RESEARCH: float = 0.3
    TEMPERATURE_BRIEF: float = 0.4
    TEMPERATURE_DRAFTING: float = 0.8
    TEMPERATURE_REVISION: float = 0.65
    TEMPERATURE_EVALUATION: float = 0.2
    TEMPERATURE_DEFAULT: float = 0.6

    # LLM Call Settings & Fallbacks
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 3.0
    HTTPX_TIMEOUT: float = 600.0
    LLM_TOP_P: float = 0.8
    MAX_GENERATION_TOKENS: int = 16384
    MAX_CONCURRENT_LLM_CALLS: int = 4
    TIKTOKEN_DEFAULT_ENCODING: str = "cl100k_base"
    FALLBACK_CHARS_PER_TOKEN: float = 4.0
    TOKENIZER_CACHE_SIZE: int = 10
    MAX_RESEARCH_CONTEXT_TOKENS: int = 6000

    # Revision loop and quality gate
    MAX_REVISION_ROUNDS: int = 3
    QUALITY_THRESHOLDS: dict[str, float] = {
        "overall": 75.0,
        "eeat": 70.0,
        "depth": 65.0,
        "factual": 70.0,
    }
    SCORING_WEIGHTS: dict[str, float] = {
        "seo": 0.20,
        "eeat": 0.30,
        "depth": 0.15,
        "factual": 0.15,
        "structural": 0.05,
        "brief-fit": 0.15,
    }
    # Neutral values substituted when a degradable stage fails. A metric
    # mapped to None stays missing and its weight is redistributed.
    FALLBACK_SCORES: dict[str, float | None] = {
        "structural": 50.0,
        "brief-fit": 70.0,
        "seo": None,
        "eeat": None,
        "depth": None,
        "factual": None,
    }
    MAX_IMPROVEMENT_INSTRUCTIONS: int = 12
    MAX_BRIEF_TOPIC_INSTRUCTIONS: int = 5
    MAX_BRIEF_QUESTION_INSTRUCTIONS: int = 3
    INSTRUCTION_SIMILARITY_THRESHOLD: float = 90.0
    BRIEF_COVERAGE_MATCH_THRESHOLD: float = 85.0

    # Per-stage deadlines in seconds
    STAGE_TIMEOUTS: dict[str, float] = {
        "research": 240.0,
        "brief": 120.0,
        "writer": 600.0,
        "structure": 60.0,
        "scorer": 180.0,
        "qa": 240.0,
        "metadata": 30.0,
    }
    DEFAULT_STAGE_TIMEOUT: float = 300.0

    # Request defaults
    DEFAULT_TARGET_WORD_COUNT: int = 2000
    DEFAULT_TONE: str = "professional"

    # Output and File Paths
    BASE_OUTPUT_DIR: str = "draftloop_output"
    METADATA_DIR: str = "metadata"
    CONTENT_DIR: str = "content"

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="DRAFTLOOP_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "draftloop_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @field_validator("SCORING_WEIGHTS")
    @classmethod
    def _weights_not_negative(cls, value: dict[str, float]) -> dict[str, float]:
        for metric, weight in value.items():
            if weight < 0:
                raise ValueError(f"Weight for '{metric}' must not be negative")
        return value

    @field_validator("QUALITY_THRESHOLDS")
    @classmethod
    def _thresholds_in_range(cls, value: dict[str, float]) -> dict[str, float]:
        for metric, minimum in value.items():
            if not 0.0 <= minimum <= 100.0:
                raise ValueError(
                    f"Threshold for '{metric}' must be within [0, 100], got {minimum}"
                )
        return value

    @field_validator("MAX_REVISION_ROUNDS")
    @classmethod
    def _rounds_not_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("MAX_REVISION_ROUNDS must not be negative")
        return value

    @model_validator(mode="after")
    def set_dynamic_model_defaults(self) -> DraftLoopSettings:
        if self.SCORING_WEIGHTS and not any(self.SCORING_WEIGHTS.values()):
            logger.warning(
                "SCORING_WEIGHTS are all zero; every overall score will be 0."
            )
        if self.FALLBACK_GENERATION_MODEL is None:
            self.FALLBACK_GENERATION_MODEL = self.MEDIUM_MODEL
        if self.RESEARCH_MODEL is None:
            self.RESEARCH_MODEL = self.MEDIUM_MODEL
        if self.BRIEF_MODEL is None:
            self.BRIEF_MODEL = self.SMALL_MODEL
        if self.WRITER_MODEL is None:
            self.WRITER_MODEL = self.LARGE_MODEL
        if self.SCORING_MODEL is None:
            self.SCORING_MODEL = self.MEDIUM_MODEL
        if self.QA_MODEL is None:
            self.QA_MODEL = self.LARGE_MODEL
        return self

    model_config = SettingsConfigDict(env_prefix="", env_file=".env")


settings = DraftLoopSettings()


@dataclass
class PipelineConfig:
    """Quality-gate values snapshotted for one orchestrator instance."""

    max_rounds: int
    thresholds: dict[str, float]
    weights: dict[str, float]
    fallback_scores: dict[str, float | None]
    max_instructions: int
    max_brief_topics: int
    max_brief_questions: int
    instruction_similarity: float
    brief_coverage_threshold: float = 85.0
    stage_timeouts: dict[str, float] = field(default_factory=dict)
    default_timeout: float = 300.0

    @classmethod
    def from_settings(
        cls, source: DraftLoopSettings | None = None, **overrides: Any
    ) -> PipelineConfig:
        source = source or settings
        values: dict[str, Any] = {
            "max_rounds": source.MAX_REVISION_ROUNDS,
            "thresholds": dict(source.QUALITY_THRESHOLDS),
            "weights": dict(source.SCORING_WEIGHTS),
            "fallback_scores": dict(source.FALLBACK_SCORES),
            "max_instructions": source.MAX_IMPROVEMENT_INSTRUCTIONS,
            "max_brief_topics": source.MAX_BRIEF_TOPIC_INSTRUCTIONS,
            "max_brief_questions": source.MAX_BRIEF_QUESTION_INSTRUCTIONS,
            "instruction_similarity": source.INSTRUCTION_SIMILARITY_THRESHOLD,
            "brief_coverage_threshold": source.BRIEF_COVERAGE_MATCH_THRESHOLD,
            "stage_timeouts": dict(source.STAGE_TIMEOUTS),
            "default_timeout": source.DEFAULT_STAGE_TIMEOUT,
        }
        values.update(overrides)
        return cls(**values)

    def timeout_for(self, stage: str) -> float:
        return self.stage_timeouts.get(stage, self.default_timeout)


METADATA_DIR = os.path.join(settings.BASE_OUTPUT_DIR, settings.METADATA_DIR)
CONTENT_DIR = os.path.join(settings.BASE_OUTPUT_DIR, settings.CONTENT_DIR)
