from __future__ import annotations

from .models import FeedbackType, Sentence

FEEDBACK_TYPES = [item.value for item in FeedbackType]

RAW_FEEDBACK_ENTRY_JSON_SCHEMA: dict = {
    "type": "object",
    "required": ["content", "why", "sentenceId"],
    "properties": {
        "content": {"type": "string"},
        "why": {"type": "string"},
        "sentenceId": {"type": ["number", "string"]},
        "sentenceText": {"type": ["string", "null"]},
        "how": {"type": ["array", "null"]},
    },
}


def build_system_prompt(target_count: int) -> str:
    minimum = max(10, int(target_count * 0.75))
    return f"""
You are an expert writing tutor. Given an essay broken into numbered sentences, produce actionable feedback items.

For each feedback item return a JSON object with:
- content: the feedback text (1-2 sentences, clear and constructive)
- type: one of {", ".join(FEEDBACK_TYPES)}
- sentenceId: the 1-based id of the sentence this feedback refers to
- sentenceText: the exact sentence text
- why: brief explanation of why this feedback matters
- how: optional array of 1-3 revision strategies, each with "title" and "strategy" strings

Output rules:
- Return ONLY a valid JSON array of such objects, no other text.
- Generate around {target_count} feedback items, and at least {minimum}.
- Cover as many different sentences as possible; mix structural issues with sentence-level writing issues.
- Be concrete and specific; avoid generic comments.
- Within the same type, feedback for different sentences must not reuse templated wording; tie each item to details of its sentence.
""".strip()


def _numbered(sentences: list[Sentence]) -> str:
    return "\n".join(f"[{sentence.id}] {sentence.content}" for sentence in sentences)


def build_user_prompt(sentences: list[Sentence]) -> str:
    return f"Essay sentences (id in brackets):\n\n{_numbered(sentences)}"


def build_supplement_prompt(
    sentences: list[Sentence],
    digest_lines: list[str],
    target_count: int,
) -> str:
    digest = "\n".join(digest_lines)
    return (
        f"Essay sentences (id in brackets):\n\n{_numbered(sentences)}\n\n"
        f"Existing feedback items (do not repeat these ideas):\n{digest}\n\n"
        f"Generate additional distinct feedback to reach around {target_count} total items."
    )


def build_formula_prompt(formula_sentences: list[Sentence]) -> str:
    return f"""
You are reviewing mathematical writing in an essay.
For each sentence below that contains formulas, produce concrete checks on mathematical correctness and notation consistency.
Look for inconsistent symbols, undefined variables, impossible equalities, dimensional mismatch, and ambiguous notation.
Return ONLY a JSON array using the same schema: content, type, sentenceId, sentenceText, why, how.
Use type "{FeedbackType.reasoning.value}" or "{FeedbackType.others.value}".

Formula-related sentences:
{_numbered(formula_sentences)}
""".strip()
