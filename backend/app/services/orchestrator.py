from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Protocol

from ..errors import GenerationError, GenerationErrorKind
from ..models import FeedbackItem, FeedbackSource, PlanStep, Sentence
from ..schemas import (
    build_formula_prompt,
    build_supplement_prompt,
    build_system_prompt,
    build_user_prompt,
)
from .entries import FeedbackEntry, dedupe_entries, normalize_entries, parse_feedback_payload
from .fallback import build_fallback_entries
from .notation import NotationRenderer, build_notation_feedback
from .segmenter import contains_math
from .specificity import SpecificityTracker, enforce_sentence_specificity

logger = logging.getLogger(__name__)

MIN_FEEDBACK_ITEMS = 28
MAX_FEEDBACK_ITEMS = 64
MAX_OUTPUT_TOKENS = 4096
PRIMARY_TEMPERATURE = 0.5
SUPPLEMENT_TEMPERATURE = 0.6
FORMULA_TEMPERATURE = 0.3
SUPPLEMENT_DIGEST_LIMIT = 60
FORMULA_TARGET_CAP = 18
SUMMARY_TOP_TYPES = 5


def target_feedback_count(sentence_count: int) -> int:
    # Half-up rounding, not banker's rounding.
    scaled = math.floor(sentence_count * 2.2 + 0.5)
    return max(MIN_FEEDBACK_ITEMS, min(MAX_FEEDBACK_ITEMS, scaled))


def minimum_feedback_count(target_count: int) -> int:
    return max(10, math.floor(target_count * 0.75))


class TextGenerator(Protocol):
    async def complete(
        self,
        system_instruction: str,
        user_instruction: str,
        temperature: float,
        max_output_tokens: int,
    ) -> str: ...


class PipelineState(str, Enum):
    initial = "initial"
    primary_requested = "primary_requested"
    minimum_met = "minimum_met"
    supplement_requested = "supplement_requested"
    formula_requested = "formula_requested"
    fallback_applied = "fallback_applied"
    finalized = "finalized"


@dataclass(frozen=True)
class RoundOutcome:
    state: PipelineState
    succeeded: bool
    entries_parsed: int = 0
    entries_added: int = 0
    error: GenerationError | None = None


@dataclass
class GenerationReport:
    states: list[PipelineState] = field(default_factory=list)
    rounds: list[RoundOutcome] = field(default_factory=list)
    fallback_count: int = 0

    @property
    def fallback_used(self) -> bool:
        return self.fallback_count > 0

    @property
    def all_rounds_failed(self) -> bool:
        return bool(self.rounds) and not any(outcome.succeeded for outcome in self.rounds)

    @property
    def last_error(self) -> GenerationError | None:
        for outcome in reversed(self.rounds):
            if outcome.error is not None:
                return outcome.error
        return None


@dataclass
class PipelineRun:
    sentences: list[Sentence]
    target_count: int = 0
    minimum_count: int = 0
    entries: list[FeedbackEntry] = field(default_factory=list)
    tracker: SpecificityTracker = field(default_factory=SpecificityTracker)
    report: GenerationReport = field(default_factory=GenerationReport)

    @property
    def formula_sentences(self) -> list[Sentence]:
        return [sentence for sentence in self.sentences if contains_math(sentence.content)]


@dataclass(frozen=True)
class FeedbackResult:
    items: list[FeedbackItem]
    summary: str
    report: GenerationReport


class FeedbackOrchestrator:
    def __init__(
        self,
        generator: TextGenerator,
        renderer: NotationRenderer | None = None,
        round_timeout: float | None = None,
    ) -> None:
        self._generator = generator
        self._renderer = renderer
        self._round_timeout = round_timeout
        self._handlers: dict[PipelineState, Callable[[PipelineRun], Awaitable[PipelineState]]] = {
            PipelineState.initial: self._start,
            PipelineState.primary_requested: self._request_primary,
            PipelineState.minimum_met: self._continue_after_quantity_check,
            PipelineState.supplement_requested: self._request_supplement,
            PipelineState.formula_requested: self._request_formula,
            PipelineState.fallback_applied: self._apply_fallback,
        }

    async def generate(self, sentences: list[Sentence]) -> FeedbackResult:
        run = PipelineRun(sentences=list(sentences))
        state = PipelineState.initial
        while state is not PipelineState.finalized:
            state = await self.advance(run, state)
        run.report.states.append(PipelineState.finalized)
        items = finalize_entries(run)
        return FeedbackResult(items=items, summary=summarize_feedback(items), report=run.report)

    async def advance(self, run: PipelineRun, state: PipelineState) -> PipelineState:
        run.report.states.append(state)
        next_state = await self._handlers[state](run)
        logger.debug("Feedback pipeline %s -> %s (%d entries)", state.value, next_state.value, len(run.entries))
        return next_state

    async def _start(self, run: PipelineRun) -> PipelineState:
        if not run.sentences:
            return PipelineState.finalized
        run.target_count = target_feedback_count(len(run.sentences))
        run.minimum_count = minimum_feedback_count(run.target_count)
        return PipelineState.primary_requested

    async def _request_primary(self, run: PipelineRun) -> PipelineState:
        await self._run_round(
            run,
            PipelineState.primary_requested,
            build_system_prompt(run.target_count),
            build_user_prompt(run.sentences),
            PRIMARY_TEMPERATURE,
        )
        if len(run.entries) >= run.minimum_count:
            return PipelineState.minimum_met
        return PipelineState.supplement_requested

    async def _request_supplement(self, run: PipelineRun) -> PipelineState:
        digest_lines = [
            f"({entry.sentence_id}) {entry.type.value}: {entry.content}"
            for entry in run.entries[:SUPPLEMENT_DIGEST_LIMIT]
        ]
        await self._run_round(
            run,
            PipelineState.supplement_requested,
            build_system_prompt(run.target_count),
            build_supplement_prompt(run.sentences, digest_lines, run.target_count),
            SUPPLEMENT_TEMPERATURE,
        )
        return await self._continue_after_quantity_check(run)

    async def _continue_after_quantity_check(self, run: PipelineRun) -> PipelineState:
        if run.formula_sentences:
            return PipelineState.formula_requested
        return self._fallback_or_finalize(run)

    async def _request_formula(self, run: PipelineRun) -> PipelineState:
        formula_sentences = run.formula_sentences
        await self._run_round(
            run,
            PipelineState.formula_requested,
            build_system_prompt(min(FORMULA_TARGET_CAP, len(formula_sentences) * 2)),
            build_formula_prompt(formula_sentences),
            FORMULA_TEMPERATURE,
            local_entries=build_notation_feedback(formula_sentences, self._renderer),
        )
        return self._fallback_or_finalize(run)

    async def _apply_fallback(self, run: PipelineRun) -> PipelineState:
        projected = project_final_entries(run.entries, run.sentences)
        needed = run.minimum_count - len(projected)
        fallback = build_fallback_entries(run.sentences, projected, needed)
        run.entries = dedupe_entries(run.entries + fallback)
        run.report.fallback_count = len(fallback)
        logger.info(
            "Fallback synthesized %d of %d missing feedback entries for %d sentences",
            len(fallback),
            needed,
            len(run.sentences),
        )
        return PipelineState.finalized

    def _fallback_or_finalize(self, run: PipelineRun) -> PipelineState:
        if len(project_final_entries(run.entries, run.sentences)) < run.minimum_count:
            return PipelineState.fallback_applied
        return PipelineState.finalized

    async def _run_round(
        self,
        run: PipelineRun,
        state: PipelineState,
        system_instruction: str,
        user_instruction: str,
        temperature: float,
        local_entries: list[FeedbackEntry] | None = None,
    ) -> None:
        before = len(run.entries)
        error: GenerationError | None = None
        parsed: list[dict] = []
        try:
            text = await self._complete(system_instruction, user_instruction, temperature)
        except GenerationError as exc:
            error = exc
            logger.warning("Generation round %s failed (%s); continuing with no entries", state.value, exc.kind.value)
        else:
            parsed = parse_feedback_payload(text)

        service_entries = dedupe_entries(normalize_entries(parsed, run.sentences, FeedbackSource.service))
        run.entries = dedupe_entries(run.entries + service_entries + (local_entries or []))
        outcome = RoundOutcome(
            state=state,
            succeeded=error is None,
            entries_parsed=len(parsed),
            entries_added=len(run.entries) - before,
            error=error,
        )
        run.report.rounds.append(outcome)
        logger.info(
            "Generation round %s: parsed=%d added=%d total=%d",
            state.value,
            outcome.entries_parsed,
            outcome.entries_added,
            len(run.entries),
        )

    async def _complete(self, system_instruction: str, user_instruction: str, temperature: float) -> str:
        call = self._generator.complete(system_instruction, user_instruction, temperature, MAX_OUTPUT_TOKENS)
        try:
            if self._round_timeout is None:
                return await call
            return await asyncio.wait_for(call, timeout=self._round_timeout)
        except GenerationError:
            raise
        except TimeoutError as exc:
            raise GenerationError(
                GenerationErrorKind.network,
                f"generation round timed out after {self._round_timeout}s",
            ) from exc
        except asyncio.CancelledError as exc:
            task = asyncio.current_task()
            # Cancellation of the run itself must still propagate.
            if task is not None and task.cancelling():
                raise
            raise GenerationError(GenerationErrorKind.network, "round aborted") from exc
        except Exception as exc:
            logger.exception("Text generator raised an unexpected error")
            raise GenerationError(GenerationErrorKind.other, f"{type(exc).__name__}: {exc}") from exc


def project_final_entries(entries: list[FeedbackEntry], sentences: list[Sentence]) -> list[FeedbackEntry]:
    return dedupe_entries(enforce_sentence_specificity(entries, sentences, SpecificityTracker()))


def finalize_entries(run: PipelineRun) -> list[FeedbackItem]:
    if not run.sentences:
        return []
    entries = enforce_sentence_specificity(run.entries, run.sentences, run.tracker)
    entries = dedupe_entries(entries)[:MAX_FEEDBACK_ITEMS]
    return [to_feedback_item(entry, idx) for idx, entry in enumerate(entries, start=1)]


def to_feedback_item(entry: FeedbackEntry, item_id: int) -> FeedbackItem:
    return FeedbackItem(
        id=item_id,
        content=entry.content,
        type=entry.type,
        source=entry.source,
        file="LLM" if entry.source is FeedbackSource.service else "local",
        plan=[
            PlanStep(
                sentence=entry.sentence_text,
                what=[entry.sentence_id],
                why=entry.why,
                how=list(entry.how),
            )
        ],
    )


def summarize_feedback(items: list[FeedbackItem]) -> str:
    counts: dict[str, int] = {}
    touched: set[int] = set()
    for item in items:
        counts[item.type.value] = counts.get(item.type.value, 0) + 1
        for step in item.plan:
            touched.update(step.what)

    ranked = sorted(counts.items(), key=lambda pair: pair[1], reverse=True)[:SUMMARY_TOP_TYPES]
    highlights = "; ".join(f"{name}: {count} comments" for name, count in ranked) or "none"
    return f"Feedback highlights: {highlights}. {len(touched)} sentences addressed."
