from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from jsonschema import ValidationError, validate

from ..models import FeedbackSource, FeedbackType, HowItem, Sentence
from ..schemas import RAW_FEEDBACK_ENTRY_JSON_SCHEMA

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", flags=re.IGNORECASE)
_TYPE_BY_KEY: dict[str, FeedbackType] = {item.value.lower(): item for item in FeedbackType}
_TYPE_BY_KEY["word-usage"] = FeedbackType.word_usage


@dataclass(frozen=True)
class FeedbackEntry:
    sentence_id: int
    type: FeedbackType
    content: str
    why: str
    how: tuple[HowItem, ...] = ()
    sentence_text: str = ""
    source: FeedbackSource = FeedbackSource.service


def canonicalize_type(label: Any) -> FeedbackType:
    key = re.sub(r"\s+", " ", str(label if label is not None else "").strip().lower())
    return _TYPE_BY_KEY.get(key, FeedbackType.others)


def parse_feedback_payload(text: str | None) -> list[dict[str, Any]]:
    if not isinstance(text, str) or not text.strip():
        return []
    candidates = _parse_fenced_array(text) + _parse_first_array(text)

    screened: list[dict[str, Any]] = []
    for candidate in candidates:
        try:
            validate(instance=candidate, schema=RAW_FEEDBACK_ENTRY_JSON_SCHEMA)
        except ValidationError as exc:
            logger.debug("Dropping malformed feedback candidate: %s", exc.message)
            continue
        screened.append(candidate)
    return screened


def _parse_fenced_array(text: str) -> list[Any]:
    raw = text.strip()
    fenced = _FENCED_BLOCK.search(raw)
    block = fenced.group(1).strip() if fenced else raw
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def _parse_first_array(text: str) -> list[Any]:
    start = text.find("[")
    end = text.rfind("]")
    if start < 0 or end <= start:
        return []
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return []
    return parsed if isinstance(parsed, list) else []


def normalize_entries(
    raw_entries: list[dict[str, Any]],
    sentences: list[Sentence],
    source: FeedbackSource = FeedbackSource.service,
) -> list[FeedbackEntry]:
    sentence_by_id = {sentence.id: sentence for sentence in sentences}
    normalized: list[FeedbackEntry] = []
    for raw in raw_entries:
        if not isinstance(raw, dict):
            continue
        sentence_id = _coerce_sentence_id(raw.get("sentenceId"))
        if sentence_id is None or not 1 <= sentence_id <= len(sentences):
            continue
        sentence = sentence_by_id.get(sentence_id)
        if sentence is None:
            continue
        content = _clean_text(raw.get("content"))
        why = _clean_text(raw.get("why"))
        if not content or not why:
            continue
        normalized.append(
            FeedbackEntry(
                sentence_id=sentence_id,
                type=canonicalize_type(raw.get("type")),
                content=content,
                why=why,
                how=_coerce_how(raw.get("how")),
                sentence_text=sentence.content,
                source=source,
            )
        )
    return normalized


def dedupe_key(entry: FeedbackEntry) -> str:
    return f"{entry.sentence_id}|{entry.type.value}|{entry.content.strip().lower()}"


def dedupe_entries(entries: list[FeedbackEntry]) -> list[FeedbackEntry]:
    seen: set[str] = set()
    deduped: list[FeedbackEntry] = []
    for entry in entries:
        key = dedupe_key(entry)
        if key in seen:
            continue
        seen.add(key)
        deduped.append(entry)
    return deduped


def _coerce_sentence_id(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return int(number) if math.isfinite(number) and number.is_integer() else None
    return None


def _coerce_how(value: Any) -> tuple[HowItem, ...]:
    if not isinstance(value, list):
        return ()
    items: list[HowItem] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        title = item.get("title")
        strategy = item.get("strategy")
        items.append(
            HowItem(
                title=title if isinstance(title, str) else "Improve",
                strategy=strategy if isinstance(strategy, str) else "",
            )
        )
    return tuple(items)


def _clean_text(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()
