from __future__ import annotations

from ..models import FeedbackSource, FeedbackType, Sentence
from .entries import FeedbackEntry, dedupe_key
from .specificity import build_specific_feedback

FALLBACK_TYPE_ROTATION = (
    FeedbackType.reasoning,
    FeedbackType.evidence,
    FeedbackType.organization,
    FeedbackType.word_usage,
    FeedbackType.orthography,
    FeedbackType.claim,
)


def sentence_coverage(entries: list[FeedbackEntry]) -> dict[int, int]:
    coverage: dict[int, int] = {}
    for entry in entries:
        coverage[entry.sentence_id] = coverage.get(entry.sentence_id, 0) + 1
    return coverage


def build_fallback_entries(
    sentences: list[Sentence],
    existing: list[FeedbackEntry],
    needed: int,
) -> list[FeedbackEntry]:
    if needed <= 0 or not sentences:
        return []

    coverage = sentence_coverage(existing)
    ordered = sorted(sentences, key=lambda sentence: coverage.get(sentence.id, 0))
    taken = {dedupe_key(entry) for entry in existing}
    rotation = len(FALLBACK_TYPE_ROTATION)

    fallback: list[FeedbackEntry] = []
    visited: set[tuple[int, FeedbackType]] = set()
    step = 0
    while len(fallback) < needed and len(visited) < len(ordered) * rotation:
        sentence = ordered[step % len(ordered)]
        feedback_type = _next_unvisited_type(sentence.id, step % rotation, visited)
        step += 1
        if feedback_type is None:
            continue
        visited.add((sentence.id, feedback_type))

        specific = build_specific_feedback(feedback_type, sentence)
        entry = FeedbackEntry(
            sentence_id=sentence.id,
            type=feedback_type,
            content=specific.content,
            why=specific.why,
            how=specific.how,
            sentence_text=sentence.content,
            source=FeedbackSource.fallback,
        )
        key = dedupe_key(entry)
        if key in taken:
            continue
        taken.add(key)
        fallback.append(entry)
    return fallback


def _next_unvisited_type(
    sentence_id: int,
    start: int,
    visited: set[tuple[int, FeedbackType]],
) -> FeedbackType | None:
    # Shifts forward only when the rotation lands on a pair already produced.
    for offset in range(len(FALLBACK_TYPE_ROTATION)):
        feedback_type = FALLBACK_TYPE_ROTATION[(start + offset) % len(FALLBACK_TYPE_ROTATION)]
        if (sentence_id, feedback_type) not in visited:
            return feedback_type
    return None
