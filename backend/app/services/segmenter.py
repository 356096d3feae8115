from __future__ import annotations

import re

from ..models import Sentence

MATH_SPAN_PATTERN = re.compile(
    r"\\\[[\s\S]*?\\\]|\\\([\s\S]*?\\\)|\$\$[\s\S]*?\$\$|\$(?:\\.|[^$\n])+\$"
)
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def extract_math_spans(text: str) -> list[str]:
    return MATH_SPAN_PATTERN.findall(text)


def contains_math(text: str) -> bool:
    return MATH_SPAN_PATTERN.search(text) is not None


def unwrap_math_delimiters(span: str) -> str:
    for opener, closer in (("\\[", "\\]"), ("\\(", "\\)"), ("$$", "$$")):
        if span.startswith(opener) and span.endswith(closer) and len(span) >= 4:
            return span[2:-2].strip()
    if span.startswith("$") and span.endswith("$") and len(span) >= 2:
        return span[1:-1].strip()
    return span.strip()


def _math_ranges(paragraph: str) -> list[tuple[int, int]]:
    return [match.span() for match in MATH_SPAN_PATTERN.finditer(paragraph)]


def _split_outside_math(paragraph: str) -> list[str]:
    ranges = _math_ranges(paragraph)
    fragments: list[str] = []
    start = 0
    for boundary in _SENTENCE_BOUNDARY.finditer(paragraph):
        if any(low <= boundary.start() < high for low, high in ranges):
            continue
        fragments.append(paragraph[start : boundary.start()])
        start = boundary.end()
    fragments.append(paragraph[start:])
    return fragments


def segment_essay(text: str) -> list[Sentence]:
    normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    paragraphs = [part.strip() for part in _PARAGRAPH_BREAK.split(normalized)]
    paragraphs = [part for part in paragraphs if part]

    sentences: list[Sentence] = []
    for paragraph_idx, paragraph in enumerate(paragraphs, start=1):
        for fragment in _split_outside_math(paragraph):
            content = fragment.strip()
            if not content:
                continue
            sentences.append(
                Sentence(id=len(sentences) + 1, paragraph=paragraph_idx, content=content)
            )
    return sentences


def essay_to_plain_text(sentences: list[Sentence]) -> str:
    by_paragraph: dict[int, list[str]] = {}
    for sentence in sentences:
        by_paragraph.setdefault(sentence.paragraph, []).append(sentence.content.strip())
    return "\n\n".join(" ".join(parts) for _, parts in sorted(by_paragraph.items()))
