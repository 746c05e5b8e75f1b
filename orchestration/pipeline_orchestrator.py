# orchestration/pipeline_orchestrator.py
"""Primary orchestrator sequencing the DraftLoop stages and the revision loop."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog

from agents.protocols import (
    BriefClient,
    MetadataStore,
    QAReviewerClient,
    ResearchClient,
    ScorerClient,
    StructuralOptimizerClient,
    WriterClient,
)
from agents.scoring_agent import BriefFitScorer
from config import PipelineConfig
from core.abort import AbortCoordinator, describe_exception
from core.errors import (
    FatalStageError,
    InvalidRequestError,
    MetadataPersistenceError,
    PipelineCancelled,
    PipelineError,
    StageFailure,
)
from models import (
    ContentBrief,
    DegradationRecord,
    Draft,
    GenerationRequest,
    QAResult,
    QualityScoreSet,
    ReasonCode,
    ResearchResult,
    RevisionDecision,
    RevisionRound,
    StructureResult,
)
from orchestration.metadata import MetadataWriter
from orchestration.models import (
    Degraded,
    Fatal,
    FinalResult,
    Ok,
    StageOutcome,
    _RunState,
)
from orchestration.progress import (
    PHASE_BRIEF,
    PHASE_DECIDE,
    PHASE_FINALIZE,
    PHASE_QA,
    PHASE_RESEARCH,
    PHASE_REVISION,
    PHASE_SCORING,
    PHASE_STRUCTURE,
    PHASE_WRITING,
    ProgressErrorHandler,
    ProgressObserver,
    ProgressReporter,
)
from processing.instructions import (
    brief_instructions,
    generate_slug,
    harvest_instructions,
)
from processing.revision_controller import decide
from processing.score_aggregator import ScoreAggregator, normalize_score
from processing.structure_analysis import structural_score

logger = structlog.get_logger(__name__)

_NO_FALLBACK: Any = object()

STATUS_DRAFT = "draft"
STATUS_PASSED = "passed"
STATUS_NEEDS_REVIEW = "needs_review"
STATUS_CANCELLED = "cancelled"
STATUS_FAILED = "failed"

_STATUS_FOR_REASON = {
    ReasonCode.QUALITY_MET: STATUS_PASSED,
    ReasonCode.BUDGET_EXHAUSTED: STATUS_NEEDS_REVIEW,
    ReasonCode.CANCELLED: STATUS_CANCELLED,
    ReasonCode.FATAL_ERROR: STATUS_FAILED,
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_content_id() -> str:
    return uuid.uuid4().hex


class ContentPipelineOrchestrator:
    """Run research, drafting, scoring and revision for one request at a time.

    The orchestrator itself is stateless between runs. Every collaborator is
    injected; ``brief`` and ``structure`` may be ``None`` to skip those phases.
    """

    def __init__(
        self,
        *,
        research: ResearchClient,
        writer: WriterClient,
        qa: QAReviewerClient,
        store: MetadataStore,
        brief: BriefClient | None = None,
        structure: StructuralOptimizerClient | None = None,
        scorers: Sequence[ScorerClient] = (),
        config: PipelineConfig | None = None,
        id_factory: Callable[[], str] = _new_content_id,
    ) -> None:
        self.research = research
        self.writer = writer
        self.qa = qa
        self.store = store
        self.brief = brief
        self.structure = structure
        self.scorers = tuple(scorers)
        self.config = config or PipelineConfig.from_settings()
        self.aggregator = ScoreAggregator(
            self.config.weights, self.config.fallback_scores
        )
        self.id_factory = id_factory
        logger.info(
            "ContentPipelineOrchestrator initialized.",
            scorers=[s.name for s in self.scorers],
            max_rounds=self.config.max_rounds,
        )

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------
    async def run(
        self,
        request: GenerationRequest | Mapping[str, Any],
        observer: ProgressObserver | None = None,
        on_progress_error: ProgressErrorHandler | None = None,
    ) -> FinalResult:
        """Generate content for ``request``.

        Stage failures never raise: they come back as a :class:`FinalResult`
        whose ``reason`` is ``fatal-error`` or ``cancelled``. Use
        :meth:`FinalResult.raise_for_reason` to turn those into exceptions.
        """
        reporter = ProgressReporter(observer, on_progress_error)
        try:
            request = GenerationRequest.parse(request)
        except InvalidRequestError as exc:
            logger.error("Rejected generation request.", error=exc.message)
            return FinalResult(
                reason=ReasonCode.FATAL_ERROR,
                draft=None,
                best_scores=None,
                rounds=[],
                metadata={},
                error=exc,
            )

        state = _RunState(content_id=self.id_factory())
        log = logger.bind(content_id=state.content_id, topic=request.topic)
        coordinator = AbortCoordinator(request.abort_token)
        meta = MetadataWriter(
            self.store,
            state.content_id,
            timeout=self.config.timeout_for("metadata"),
        )

        try:
            reason = await self._execute(
                request, state, coordinator, reporter, meta, log
            )
        except PipelineCancelled as exc:
            log.info("Pipeline cancelled.", context=exc.details.get("context"))
            return await self._finish(
                ReasonCode.CANCELLED, state, reporter, meta, log, error=exc
            )
        except PipelineError as exc:
            log.error("Pipeline failed.", error=exc.message, exc_info=True)
            return await self._finish(
                ReasonCode.FATAL_ERROR, state, reporter, meta, log, error=exc
            )
        except Exception as exc:
            phase = reporter.last_phase or "pipeline"
            log.error("Unexpected pipeline failure.", phase=phase, exc_info=True)
            return await self._finish(
                ReasonCode.FATAL_ERROR,
                state,
                reporter,
                meta,
                log,
                error=FatalStageError(phase, exc),
            )
        return await self._finish(reason, state, reporter, meta, log)

    # ------------------------------------------------------------------
    # Phase sequencing
    # ------------------------------------------------------------------
    async def _execute(
        self,
        request: GenerationRequest,
        state: _RunState,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        meta: MetadataWriter,
        log: Any,
    ) -> ReasonCode:
        coordinator.check("before start")
        await meta.initialize(self._initial_metadata(request, state))
        log.info("Content record created.")

        await self._research_phase(request, state, coordinator, reporter, meta, log)
        await self._brief_phase(request, state, coordinator, reporter, meta, log)

        await reporter.started(
            PHASE_WRITING,
            "Writing initial draft...",
            f"Target: {request.word_count or 'default'} words",
        )
        draft = await self._write(request, state, coordinator, reporter, None, (), 0)
        await reporter.completed(
            PHASE_WRITING, "Initial draft complete", f"{draft.word_count} words"
        )

        draft = await self._structure_phase(
            request, state, draft, coordinator, reporter, meta, log
        )

        round_index = 0
        while True:
            coordinator.check(f"before scoring round {round_index}")
            scores, qa_result = await self._score_round(
                request, state, draft, round_index, coordinator, reporter, meta
            )
            instructions = harvest_instructions(
                qa_result.instructions,
                brief_instructions(
                    state.brief,
                    draft.content,
                    max_topics=self.config.max_brief_topics,
                    max_questions=self.config.max_brief_questions,
                    threshold=self.config.brief_coverage_threshold,
                ),
                limit=self.config.max_instructions,
                similarity=self.config.instruction_similarity,
            )
            decision = decide(
                scores, round_index, self.config.max_rounds, self.config.thresholds
            )
            state.rounds.append(
                RevisionRound(
                    round=round_index,
                    draft=draft,
                    scores=scores,
                    instructions=tuple(instructions),
                    decision=decision,
                )
            )
            improved = state.consider(draft, scores)
            log.info(
                "Round scored.",
                round=round_index,
                overall=round(scores.overall, 2),
                best=improved,
                degraded=list(scores.degraded),
            )
            await self._persist(
                meta,
                state,
                self._round_metadata(state, round_index, scores, qa_result, decision),
                log,
            )
            await reporter.completed(
                PHASE_DECIDE,
                self._decision_message(decision),
                f"Overall score: {scores.overall:.1f}",
            )
            if not decision.should_revise:
                if decision.reason is None:
                    raise StageFailure(
                        "Stop decision carries no reason code", stage="decide"
                    )
                return decision.reason

            next_round = round_index + 1
            coordinator.check(f"before revision round {next_round}")
            await reporter.started(
                PHASE_REVISION,
                f"Revising draft (Round {next_round})...",
                f"{len(instructions)} improvement instructions",
            )
            draft = await self._write(
                request, state, coordinator, reporter, draft, instructions, next_round
            )
            await reporter.completed(
                PHASE_REVISION,
                f"Revision {next_round} complete",
                f"{draft.word_count} words",
            )
            round_index = next_round

    async def _research_phase(
        self,
        request: GenerationRequest,
        state: _RunState,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        meta: MetadataWriter,
        log: Any,
    ) -> None:
        await reporter.started(
            PHASE_RESEARCH,
            "Researching topic...",
            f"Keyword: {request.primary_keyword}",
        )
        outcome = await self._invoke(
            coordinator,
            "research",
            lambda: self.research.research(
                coordinator.token,
                request.topic,
                request.primary_keyword,
                request.competitor_urls,
            ),
            ResearchResult,
        )
        if not isinstance(outcome, Ok):
            await reporter.failed(PHASE_RESEARCH, "Research failed", str(outcome.cause))
            raise FatalStageError("research", outcome.cause)
        state.research = outcome.value
        await reporter.completed(
            PHASE_RESEARCH,
            "Research complete",
            f"{len(state.research.citations)} sources, "
            f"{len(state.research.competitor_snippets)} competitors",
        )
        await self._persist(
            meta,
            state,
            {
                "research": {
                    "summary": state.research.summary,
                    "citations": [
                        c.model_dump(mode="json") for c in state.research.citations
                    ],
                    "search_intent": state.research.search_intent,
                }
            },
            log,
        )

    async def _brief_phase(
        self,
        request: GenerationRequest,
        state: _RunState,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        meta: MetadataWriter,
        log: Any,
    ) -> None:
        await reporter.started(PHASE_BRIEF, "Building content brief...")
        if self.brief is None:
            await reporter.skipped(PHASE_BRIEF, "content brief", "No brief client configured")
            return
        brief_client = self.brief
        outcome: StageOutcome[ContentBrief | None] = await self._invoke(
            coordinator,
            "brief",
            lambda: brief_client.brief(
                coordinator.token, request.primary_keyword, request.competitor_urls
            ),
            ContentBrief,
            fallback=None,
        )
        if not isinstance(outcome, Ok):
            state.brief_degraded = True
            await self._record_degradation(
                state, meta, "brief", outcome.cause, fallback=None, log=log
            )
            await reporter.skipped(
                PHASE_BRIEF, "content brief", "Continuing without brief"
            )
            return
        state.brief = outcome.value
        await reporter.completed(
            PHASE_BRIEF,
            "Content brief ready",
            f"{len(state.brief.topics)} topics, {len(state.brief.questions)} questions",
        )
        await self._persist(
            meta, state, {"brief": state.brief.model_dump(mode="json")}, log
        )

    async def _structure_phase(
        self,
        request: GenerationRequest,
        state: _RunState,
        draft: Draft,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        meta: MetadataWriter,
        log: Any,
    ) -> Draft:
        await reporter.started(PHASE_STRUCTURE, "Optimizing structure...")
        if self.structure is None:
            await reporter.skipped(
                PHASE_STRUCTURE, "structure optimization", "No optimizer configured"
            )
            return draft
        optimizer = self.structure
        outcome: StageOutcome[StructureResult | None] = await self._invoke(
            coordinator,
            "structure",
            lambda: optimizer.optimize(
                coordinator.token, draft, request.primary_keyword
            ),
            StructureResult,
            fallback=None,
        )
        if not isinstance(outcome, Ok):
            state.structural_score = self.aggregator.fallback_for("structural")
            state.structure_degraded = True
            await self._record_degradation(
                state,
                meta,
                "structure",
                outcome.cause,
                fallback={"structural": state.structural_score},
                log=log,
            )
            await reporter.skipped(
                PHASE_STRUCTURE,
                "structure optimization",
                "Continuing with original structure",
            )
            return draft
        result = outcome.value
        state.structure = result
        state.structural_score = structural_score(result.report)
        optimized = result.optimized_draft
        if optimized.round != draft.round or not optimized.content.strip():
            optimized = Draft(
                content=optimized.content.strip() or draft.content, round=draft.round
            )
        await reporter.completed(
            PHASE_STRUCTURE,
            "Structure optimization complete",
            f"Structural score: {state.structural_score:.0f}",
        )
        await self._persist(
            meta,
            state,
            {
                "structure": {
                    "meta_title": result.meta_title,
                    "meta_description": result.meta_description,
                    "slug": result.slug,
                    "direct_answer": result.direct_answer,
                    "report": result.report.model_dump(mode="json"),
                    "score": state.structural_score,
                }
            },
            log,
        )
        return optimized

    # ------------------------------------------------------------------
    # Scoring round
    # ------------------------------------------------------------------
    async def _score_round(
        self,
        request: GenerationRequest,
        state: _RunState,
        draft: Draft,
        round_index: int,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        meta: MetadataWriter,
    ) -> tuple[QualityScoreSet, QAResult]:
        log = logger.bind(content_id=state.content_id, round=round_index)
        await reporter.started(
            PHASE_SCORING,
            f"Analyzing content quality (Round {round_index + 1})...",
        )
        raw: dict[str, Any] = {}
        degraded: list[str] = []

        if state.structural_score is not None:
            raw["structural"] = state.structural_score
            if state.structure_degraded:
                degraded.append("structural")

        scorers = list(self.scorers)
        if state.brief is not None and not state.brief.is_empty:
            scorers.append(
                BriefFitScorer(state.brief, self.config.brief_coverage_threshold)
            )
        elif state.brief_degraded:
            fallback = self.aggregator.fallback_for("brief-fit")
            if fallback is not None:
                raw["brief-fit"] = fallback
            degraded.append("brief-fit")

        outcomes = await asyncio.gather(
            *(
                self._run_scorer(scorer, draft, request, coordinator)
                for scorer in scorers
            ),
            return_exceptions=True,
        )
        for outcome in outcomes:
            # Only cancellation escapes _run_scorer.
            if isinstance(outcome, BaseException):
                raise outcome
        failed_scorers: list[str] = []
        for scorer, outcome in zip(scorers, outcomes, strict=True):
            stage = f"scorer:{scorer.name}"
            if isinstance(outcome, Ok):
                complete = await self._merge_declared_scores(
                    state,
                    meta,
                    stage,
                    scorer.metrics,
                    outcome.value,
                    raw,
                    degraded,
                    round_index,
                    log,
                )
                if not complete:
                    failed_scorers.append(scorer.name)
                continue
            fallback = self._fallback_scores(scorer.metrics)
            raw.update(fallback)
            degraded.extend(scorer.metrics)
            failed_scorers.append(scorer.name)
            await self._record_degradation(
                state,
                meta,
                stage,
                outcome.cause,
                fallback=fallback,
                round_index=round_index,
                log=log,
            )
        if failed_scorers:
            await reporter.skipped(
                PHASE_SCORING,
                f"scoring by {', '.join(failed_scorers)}",
                "Using fallback scores",
            )
        else:
            await reporter.completed(
                PHASE_SCORING,
                "Scoring complete",
                ", ".join(sorted(raw)) or "No metrics",
            )

        qa_result = await self._qa_phase(
            state, draft, round_index, coordinator, reporter, meta, raw, degraded, log
        )
        scores = self.aggregator.build(raw, degraded)
        return scores, qa_result

    async def _run_scorer(
        self,
        scorer: ScorerClient,
        draft: Draft,
        request: GenerationRequest,
        coordinator: AbortCoordinator,
    ) -> StageOutcome[dict[str, Any]]:
        return await self._invoke(
            coordinator,
            "scorer",
            lambda: scorer.score(coordinator.token, draft, request.primary_keyword),
            dict,
            fallback=self._fallback_scores(scorer.metrics),
        )

    def _fallback_scores(self, metrics: Sequence[str]) -> dict[str, float]:
        return {
            metric: value
            for metric in metrics
            if (value := self.aggregator.fallback_for(metric)) is not None
        }

    async def _merge_declared_scores(
        self,
        state: _RunState,
        meta: MetadataWriter,
        stage: str,
        declared: Sequence[str],
        values: Mapping[str, Any],
        raw: dict[str, Any],
        degraded: list[str],
        round_index: int,
        log: Any,
    ) -> bool:
        """Merge a stage's scores into ``raw``.

        Declared metrics the stage left out, or returned without a usable
        value, degrade exactly like a failed stage. Returns ``False`` when any
        did.
        """
        raw.update(values)
        unusable = [m for m in declared if normalize_score(values.get(m)) is None]
        if not unusable:
            return True
        for metric in unusable:
            raw.pop(metric, None)
        fallback = self._fallback_scores(unusable)
        raw.update(fallback)
        degraded.extend(unusable)
        cause = StageFailure(
            f"Stage '{stage}' returned no usable score for: {', '.join(unusable)}",
            stage=stage,
            details={
                "metrics": unusable,
                "returned": {m: repr(values.get(m)) for m in unusable if m in values},
            },
        )
        await self._record_degradation(
            state,
            meta,
            stage,
            cause,
            fallback=fallback,
            round_index=round_index,
            log=log,
        )
        return False

    def _require_research(self, state: _RunState, stage: str) -> ResearchResult:
        if state.research is None:
            raise FatalStageError(
                stage,
                StageFailure("Research result is not available", stage="research"),
            )
        return state.research

    async def _qa_phase(
        self,
        state: _RunState,
        draft: Draft,
        round_index: int,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        meta: MetadataWriter,
        raw: dict[str, Any],
        degraded: list[str],
        log: Any,
    ) -> QAResult:
        await reporter.started(PHASE_QA, "Running E-E-A-T quality review...")
        research = self._require_research(state, "qa")
        outcome: StageOutcome[QAResult] = await self._invoke(
            coordinator,
            "qa",
            lambda: self.qa.review(
                coordinator.token, draft, research, research.competitor_snippets
            ),
            QAResult,
            fallback=QAResult(),
        )
        metrics = tuple(getattr(self.qa, "metrics", ()))
        if not isinstance(outcome, Ok):
            fallback = self._fallback_scores(metrics)
            raw.update(fallback)
            degraded.extend(metrics)
            await self._record_degradation(
                state,
                meta,
                "qa",
                outcome.cause,
                fallback=fallback,
                round_index=round_index,
                log=log,
            )
            await reporter.skipped(PHASE_QA, "quality review", "Using fallback scores")
            return QAResult()
        await self._merge_declared_scores(
            state,
            meta,
            "qa",
            metrics,
            outcome.value.scores,
            raw,
            degraded,
            round_index,
            log,
        )
        await reporter.completed(
            PHASE_QA,
            "Quality review complete",
            f"{len(outcome.value.instructions)} improvement instructions",
        )
        return outcome.value

    # ------------------------------------------------------------------
    # Stage invocation
    # ------------------------------------------------------------------
    async def _invoke(
        self,
        coordinator: AbortCoordinator,
        stage: str,
        call: Callable[[], Awaitable[Any]],
        expected: type,
        fallback: Any = _NO_FALLBACK,
    ) -> StageOutcome[Any]:
        """Run one stage call and tag the result.

        Failures become :class:`Degraded` when a fallback is given, otherwise
        :class:`Fatal`. Cancellation propagates as :class:`PipelineCancelled`.
        """
        try:
            value = await coordinator.guard(
                stage, call, timeout=self.config.timeout_for(stage)
            )
            if not isinstance(value, expected):
                raise StageFailure(
                    f"Stage '{stage}' returned {type(value).__name__}, "
                    f"expected {expected.__name__}",
                    stage=stage,
                )
        except PipelineCancelled:
            raise
        except Exception as exc:
            if fallback is _NO_FALLBACK:
                logger.error("Stage failed.", stage=stage, error=str(exc), exc_info=True)
                return Fatal(exc)
            logger.warning("Stage degraded.", stage=stage, error=str(exc))
            return Degraded(fallback, exc)
        return Ok(value)

    async def _write(
        self,
        request: GenerationRequest,
        state: _RunState,
        coordinator: AbortCoordinator,
        reporter: ProgressReporter,
        previous: Draft | None,
        instructions: Sequence[str],
        round_index: int,
    ) -> Draft:
        research = self._require_research(state, "writer")
        phase = PHASE_WRITING if previous is None else PHASE_REVISION
        state.writer_calls += 1
        outcome = await self._invoke(
            coordinator,
            "writer",
            lambda: self.writer.write(
                coordinator.token,
                request,
                research,
                state.brief,
                previous,
                list(instructions),
                round_index,
            ),
            Draft,
        )
        if isinstance(outcome, Ok) and not outcome.value.content.strip():
            outcome = Fatal(
                StageFailure(
                    f"Writer returned an empty draft for round {round_index}",
                    stage="writer",
                )
            )
        if not isinstance(outcome, Ok):
            await reporter.failed(phase, "Writer failed", str(outcome.cause))
            raise FatalStageError("writer", outcome.cause)
        draft = outcome.value
        if draft.round != round_index:
            draft = Draft(content=draft.content, round=round_index)
        state.current_draft = draft
        return draft

    # ------------------------------------------------------------------
    # Metadata helpers
    # ------------------------------------------------------------------
    def _initial_metadata(
        self, request: GenerationRequest, state: _RunState
    ) -> dict[str, Any]:
        return {
            "content_id": state.content_id,
            "topic": request.topic,
            "keywords": list(request.keywords),
            "primary_keyword": request.primary_keyword,
            "content_type": request.content_type.value,
            "tone": request.tone,
            "target_word_count": request.word_count,
            "competitor_urls": list(request.competitor_urls),
            "user_id": request.user_id,
            "slug": generate_slug(request.topic),
            "status": STATUS_DRAFT,
            "revision_round": 0,
            "created_at": _now(),
            "degradations": [],
        }

    def _round_metadata(
        self,
        state: _RunState,
        round_index: int,
        scores: QualityScoreSet,
        qa_result: QAResult,
        decision: RevisionDecision,
    ) -> dict[str, Any]:
        return {
            "revision_round": round_index,
            "last_revision": _now(),
            "quality_scores": {
                **scores.as_dict(),
                "degraded": list(scores.degraded),
            },
            "qa_report": {
                "instructions": list(qa_result.instructions),
                "strengths": list(qa_result.strengths),
                "weaknesses": list(qa_result.weaknesses),
            },
            "decision": {
                "action": decision.action.value,
                "reason": decision.reason.value if decision.reason else None,
                "failing_metrics": list(decision.failing_metrics),
            },
            "rounds": [
                {
                    "round": r.round,
                    "overall": r.scores.overall,
                    "word_count": r.draft.word_count,
                }
                for r in state.rounds
            ],
        }

    async def _persist(
        self,
        meta: MetadataWriter,
        state: _RunState,
        update: Mapping[str, Any],
        log: Any,
    ) -> None:
        """Write ``update``. Failures after the initial record are degradable."""
        if not meta.initialized:
            return
        try:
            await meta.update(update)
        except MetadataPersistenceError as exc:
            log.warning("Metadata write failed; continuing.", error=exc.message)
            state.degradations.append(
                DegradationRecord(
                    stage="metadata",
                    error_type=type(exc).__name__,
                    message=exc.message,
                    round=state.rounds[-1].round if state.rounds else None,
                )
            )

    async def _record_degradation(
        self,
        state: _RunState,
        meta: MetadataWriter,
        stage: str,
        cause: BaseException,
        *,
        fallback: Any,
        log: Any,
        round_index: int | None = None,
    ) -> None:
        described = describe_exception(cause)
        log.warning(
            "Stage degraded; using fallback.",
            stage=stage,
            error_type=described["type"],
            error=described["message"],
            fallback=fallback,
        )
        state.degradations.append(
            DegradationRecord(
                stage=stage,
                error_type=described["type"],
                message=described["message"],
                fallback=fallback,
                round=round_index,
            )
        )
        await self._persist(
            meta,
            state,
            {
                "degradations": [
                    d.model_dump(mode="json") for d in state.degradations
                ]
            },
            log,
        )

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------
    async def _finish(
        self,
        reason: ReasonCode,
        state: _RunState,
        reporter: ProgressReporter,
        meta: MetadataWriter,
        log: Any,
        error: PipelineError | None = None,
    ) -> FinalResult:
        best = state.best_scores
        final_update: dict[str, Any] = {
            "status": _STATUS_FOR_REASON[reason],
            "completed_at": _now(),
            "final": {
                "reason": reason.value,
                "rounds": len(state.rounds),
                "writer_calls": state.writer_calls,
                "best_round": state.best_draft.round if state.best_draft else None,
                "overall": best.overall if best else None,
                "word_count": state.best_draft.word_count if state.best_draft else None,
            },
            "degradations": [d.model_dump(mode="json") for d in state.degradations],
        }
        if error is not None:
            final_update["error"] = error.to_dict()
        await self._persist(meta, state, final_update, log)

        if reason in (ReasonCode.QUALITY_MET, ReasonCode.BUDGET_EXHAUSTED):
            await reporter.started(PHASE_FINALIZE, "Finalizing content...")
            await reporter.completed(
                PHASE_FINALIZE,
                "Content generation complete",
                f"Overall score: {best.overall:.1f} after {len(state.rounds)} round(s)"
                if best
                else None,
            )
        elif reason is ReasonCode.CANCELLED:
            await reporter.failed(PHASE_FINALIZE, "Generation cancelled", error.message if error else None)
        else:
            await reporter.failed(PHASE_FINALIZE, "Generation failed", error.message if error else None)

        log.info(
            "Pipeline finished.",
            reason=reason.value,
            rounds=len(state.rounds),
            overall=round(best.overall, 2) if best else None,
            degradations=len(state.degradations),
        )
        return FinalResult(
            reason=reason,
            draft=state.best_draft,
            best_scores=best,
            rounds=list(state.rounds),
            metadata=meta.document,
            content_id=state.content_id,
            degradations=list(state.degradations),
            error=error,
        )

    @staticmethod
    def _decision_message(decision: RevisionDecision) -> str:
        if decision.reason is ReasonCode.QUALITY_MET:
            return "Quality thresholds met"
        if decision.reason is ReasonCode.BUDGET_EXHAUSTED:
            return "Revision budget exhausted"
        return f"Revision needed: {', '.join(decision.failing_metrics)}"
