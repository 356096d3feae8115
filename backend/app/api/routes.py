from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException

from ..config import settings
from ..models import (
    FeedbackRequest,
    FeedbackResponse,
    HealthResponse,
    RoundSummary,
    SegmentRequest,
    SegmentResponse,
    Sentence,
    SummaryRequest,
    SummaryResponse,
)
from ..services.openai_service import OpenAIService
from ..services.orchestrator import FeedbackOrchestrator, TextGenerator, summarize_feedback
from ..services.segmenter import segment_essay

router = APIRouter(prefix="/api/v1", tags=["v1"])

GeneratorFactory = Callable[[str | None], TextGenerator]


def get_generator_factory() -> GeneratorFactory:
    return OpenAIService


def _validate_essay_text(text: str) -> None:
    if len(text) > settings.max_essay_chars:
        raise HTTPException(
            status_code=400,
            detail=f"Essay is too long. Limit: {settings.max_essay_chars} characters.",
        )


def _validate_sentence_ids(sentences: list[Sentence]) -> None:
    for expected_id, sentence in enumerate(sentences, start=1):
        if sentence.id != expected_id:
            raise HTTPException(
                status_code=400,
                detail=f"Sentence ids must be dense and 1-based; expected {expected_id}, got {sentence.id}.",
            )


def _resolve_sentences(payload: FeedbackRequest) -> list[Sentence]:
    if (payload.text is None) == (payload.sentences is None):
        raise HTTPException(status_code=400, detail="Provide exactly one of text or sentences.")
    if payload.text is not None:
        _validate_essay_text(payload.text)
        return segment_essay(payload.text)
    sentences = list(payload.sentences or [])
    _validate_sentence_ids(sentences)
    return sentences


@router.post("/sentences", response_model=SegmentResponse)
async def split_sentences(payload: SegmentRequest) -> SegmentResponse:
    _validate_essay_text(payload.text)
    return SegmentResponse(sentences=segment_essay(payload.text))


@router.post("/feedback", response_model=FeedbackResponse)
async def generate_feedback(
    payload: FeedbackRequest,
    generator_factory: GeneratorFactory = Depends(get_generator_factory),
) -> FeedbackResponse:
    sentences = _resolve_sentences(payload)
    orchestrator = FeedbackOrchestrator(
        generator_factory(payload.api_key),
        round_timeout=settings.round_timeout_seconds,
    )
    result = await orchestrator.generate(sentences)
    report = result.report

    last_error = report.last_error if report.all_rounds_failed else None
    return FeedbackResponse(
        items=result.items,
        summary=result.summary,
        fallback_used=report.fallback_used,
        fallback_count=report.fallback_count,
        rounds=[
            RoundSummary(
                state=outcome.state.value,
                succeeded=outcome.succeeded,
                entries_parsed=outcome.entries_parsed,
                entries_added=outcome.entries_added,
                error_code=outcome.error.kind.value if outcome.error else None,
            )
            for outcome in report.rounds
        ],
        error_code=last_error.kind.value if last_error else None,
        error_message=last_error.user_message if last_error else None,
    )


@router.post("/summary", response_model=SummaryResponse)
async def summarize(payload: SummaryRequest) -> SummaryResponse:
    return SummaryResponse(summary=summarize_feedback(payload.items))


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    service = OpenAIService()
    return HealthResponse(status="ok", provider=service.provider, model=service.model)
