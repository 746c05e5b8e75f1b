# orchestration/cli_runner.py
"""Command-line runner for the DraftLoop pipeline."""

from __future__ import annotations

import asyncio
import signal
from typing import Any

import structlog

from agents.brief_agent import ContentBriefAgent
from agents.qa_agent import QualityReviewAgent
from agents.research_agent import ResearchAgent
from agents.scoring_agent import LLMJudgeScorer
from agents.structure_agent import StructureAgent
from agents.writer_agent import ContentWriterAgent
from config import PipelineConfig
from core.abort import AbortToken
from core.errors import InvalidRequestError
from core.llm_interface import LLMService
from models import GenerationRequest, ReasonCode
from orchestration.models import FinalResult
from orchestration.pipeline_orchestrator import ContentPipelineOrchestrator
from storage.file_manager import FileManager, JsonFileMetadataStore
from ui.rich_display import RichProgressObserver
from utils.logging import setup_logging

logger = structlog.get_logger(__name__)

EXIT_CODES = {
    ReasonCode.QUALITY_MET: 0,
    ReasonCode.BUDGET_EXHAUSTED: 0,
    ReasonCode.CANCELLED: 130,
    ReasonCode.FATAL_ERROR: 1,
}


def build_orchestrator(
    llm: LLMService, config: PipelineConfig | None = None
) -> ContentPipelineOrchestrator:
    """Wire the reference agents and the JSON file store."""
    return ContentPipelineOrchestrator(
        research=ResearchAgent(llm),
        brief=ContentBriefAgent(llm),
        writer=ContentWriterAgent(llm),
        structure=StructureAgent(),
        scorers=[LLMJudgeScorer(llm)],
        qa=QualityReviewAgent(llm),
        store=JsonFileMetadataStore(),
        config=config,
    )


def _install_interrupt_handler(token: AbortToken) -> bool:
    """Turn Ctrl-C into a cooperative abort of the current run."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(
            signal.SIGINT, token.abort, "Interrupted by user (Ctrl-C)"
        )
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def _run(request: GenerationRequest, config: PipelineConfig) -> FinalResult:
    llm = LLMService()
    orchestrator = build_orchestrator(llm, config)
    display = RichProgressObserver(request.topic)
    handler_installed = _install_interrupt_handler(request.abort_token)
    display.start()
    try:
        result = await orchestrator.run(request, observer=display)
    finally:
        await display.stop()
        if handler_installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
        await llm.aclose()

    if result.draft is not None and result.content_id:
        path = await FileManager().save_content(result.content_id, result.draft.content)
        logger.info("Best draft saved.", path=path, round=result.draft.round)
    logger.info(
        "DraftLoop run finished.",
        reason=result.reason.value,
        rounds=len(result.rounds),
        overall=round(result.best_scores.overall, 2) if result.best_scores else None,
        degradations=len(result.degradations),
        llm_requests=llm.request_count,
        completion_tokens=llm.completion_tokens,
    )
    if result.error is not None:
        logger.error("Run ended with error.", **result.error.to_dict())
    return result


def run(request_data: dict[str, Any], max_rounds: int | None = None) -> int:
    """Validate the request, run the pipeline and return a process exit code."""
    setup_logging()
    try:
        request = GenerationRequest.parse(request_data)
    except InvalidRequestError as exc:
        logger.error("Invalid request.", **exc.to_dict())
        return 2

    overrides: dict[str, Any] = {}
    if max_rounds is not None:
        overrides["max_rounds"] = max_rounds
    config = PipelineConfig.from_settings(**overrides)

    try:
        result = asyncio.run(_run(request, config))
    except KeyboardInterrupt:
        logger.info("DraftLoop shutting down due to KeyboardInterrupt...")
        return EXIT_CODES[ReasonCode.CANCELLED]
    return EXIT_CODES[result.reason]
